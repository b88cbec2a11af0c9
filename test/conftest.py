import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def make_repo(tmp_path: Path, name: str = "flowi.db"):
    from flowi.repositories.sqlite_repo import SqliteRepository

    repo = SqliteRepository(tmp_path / name)
    repo.init_db()
    return repo


class FixedFxService:
    def __init__(self, rate: float = 36.5):
        self.rate = rate

    def get_today_rate(self):
        return self.rate
