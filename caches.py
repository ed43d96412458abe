import logging
from typing import Dict, List, Optional

from db import TableRepository, ExerciseRepository

logger = logging.getLogger(__name__)


class SchemaSnapshot:
    """Cached table allow-list and column structure for the admin console."""

    def __init__(self, tables_repo: TableRepository) -> None:
        self.repo = tables_repo
        self.tables: List[str] = []
        self.structure: Dict[str, List[str]] = {}
        self.column_types: Dict[str, Dict[str, str]] = {}
        self.loaded = False

    def rebuild(self) -> None:
        tables = self.repo.fetch_tables()
        structure: Dict[str, List[str]] = {}
        types: Dict[str, Dict[str, str]] = {}
        for table in tables:
            columns = self.repo.fetch_columns(table)
            structure[table] = [name for name, _ in columns]
            types[table] = dict(columns)
        self.tables = tables
        self.structure = structure
        self.column_types = types
        self.loaded = True
        logger.debug("Schema snapshot rebuilt with %d tables", len(tables))

    def allows(self, table: str) -> bool:
        return table in self.tables

    def columns(self, table: str) -> List[str]:
        return list(self.structure.get(table, []))


class ExerciseCatalog:
    """In-memory view of the ``exercise`` table, rebuilt after admin edits."""

    def __init__(self, exercises_repo: ExerciseRepository) -> None:
        self.repo = exercises_repo
        self._records: Dict[int, dict] = {}
        self.rebuild()

    def rebuild(self) -> None:
        self._records = {
            eid: {"id": eid, "name": name, "muscles": muscles}
            for eid, name, muscles in self.repo.fetch_all_records()
        }
        logger.debug("Exercise catalog loaded with %d exercises", len(self._records))

    def all(self) -> List[dict]:
        return [dict(r) for r in self._records.values()]

    def get_muscles(self, exercise_id: int) -> List[str]:
        record = self._records.get(exercise_id)
        return list(record["muscles"]) if record else []

    def get_name(self, exercise_id: int) -> Optional[str]:
        record = self._records.get(exercise_id)
        return record["name"] if record else None
