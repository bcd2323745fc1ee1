"""In-memory implementations of directory interfaces."""

import threading
from typing import Dict, Optional

from .interfaces import VisitDirectory


class InMemoryVisitDirectory(VisitDirectory):
    """Directory fed by explicit registration; used in tests and local runs."""

    def __init__(self):
        self._lock = threading.Lock()
        self._first_names: Dict[str, str] = {}
        self._categories: Dict[str, str] = {}

    def register_professional(self, professional_id: str, full_name: str) -> None:
        first_name = full_name.strip().split(" ", 1)[0] if full_name.strip() else ""
        with self._lock:
            self._first_names[professional_id] = first_name

    def register_visit(self, visit_id: str, service_category: str) -> None:
        with self._lock:
            self._categories[visit_id] = service_category

    def professional_first_name(self, professional_id: str) -> Optional[str]:
        with self._lock:
            return self._first_names.get(professional_id) or None

    def service_category(self, visit_id: str) -> Optional[str]:
        with self._lock:
            return self._categories.get(visit_id)

    def clear(self) -> None:
        with self._lock:
            self._first_names.clear()
            self._categories.clear()


# Process-wide default directory
visit_directory = InMemoryVisitDirectory()
