import subprocess
from dataclasses import dataclass
from pathlib import Path

from climate import *

__prog__ = "notes"


@dataclass
class Notes:
    """Keep plain-text notes in a directory."""
    root: Path = flag(Path("notes"), short="C", descr="notes directory")
    verbose: bool = flag(False, short=True, descr="print what happens")

    def add(self, ctx: Context, args: list[str]) -> ExitError | None:
        """Append a note."""
        if not args:
            return ExitError(2, "nothing to add")
        self.root.mkdir(parents=True, exist_ok=True)
        with (self.root / "notes.txt").open("a", encoding="utf-8") as file:
            file.write(" ".join(args) + "\n")
        return None

    def show(self, ctx: Context) -> None:
        """Print every note."""
        path = self.root / "notes.txt"
        if path.exists():
            print(path.read_text(encoding="utf-8"), end="")


@dataclass
class Sync:
    """Synchronize notes with a git remote."""
    notes: Notes | None = None
    remote: str = "origin"

    def push(self, ctx: Context) -> None:
        """Push the notes directory."""
        ctx.check()
        subprocess.run(["git", "-C", str(self.notes.root), "push", self.remote], check=True)


if __name__ == '__main__':
    run_and_exit(Struct(Notes, Notes.add, Notes.show, Struct(Sync, Sync.push)))
