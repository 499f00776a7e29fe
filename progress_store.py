import json
from datetime import datetime
from pathlib import Path
from typing import Optional, Set


class ProgressStore:
    """Which meetings already have usable captions"""

    def load(self) -> Set[str]:
        raise NotImplementedError

    def save(self, completed: Set[str]) -> None:
        raise NotImplementedError


class JsonProgressStore(ProgressStore):
    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Set[str]:
        """Load completed meeting ids; a missing or unreadable file means none"""
        if not self.path.exists():
            return set()
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, ValueError):
            return set()
        return {str(meeting_id) for meeting_id in data.get("completed", [])}

    def save(self, completed: Set[str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump({
                "completed": sorted(completed),
                "lastUpdate": datetime.now().isoformat()
            }, f, indent=2)


class MemoryProgressStore(ProgressStore):
    def __init__(self, completed: Optional[Set[str]] = None):
        self.completed = set(completed or ())

    def load(self) -> Set[str]:
        return set(self.completed)

    def save(self, completed: Set[str]) -> None:
        self.completed = set(completed)
