"""
Ovenly Backend: Route Discovery
==================================

What:  Finds every feature module's routes.py and imports it.
Why:   Route modules register themselves on import (router.route(...)),
       so adding a feature means adding a folder; nothing is listed by hand.
How:   Locate the modules root, walk it recursively, import each match
       through importlib (which imports a module exactly once per process).

Candidate roots, first existing wins:
    1. <installed ovenly package>/modules    (pip install / wheel)
    2. <cwd>/backend/ovenly/modules           (repository checkout)
    3. <cwd>/ovenly/modules                   (running from backend/)

Sourceless builds ship routes.pyc next to the package instead of
routes.py; both names are accepted and count once per directory.
"""

import asyncio
import importlib
import logging
import os
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from ovenly.exceptions import RouteDiscoveryError

logger = logging.getLogger(__name__)

ROUTE_FILENAMES = ("routes.py", "routes.pyc")
MODULES_PACKAGE = "ovenly.modules"

Candidate = Tuple[Path, str]


def default_candidates() -> List[Candidate]:
    package_dir = Path(__file__).resolve().parent.parent
    cwd = Path.cwd()
    return [
        (package_dir / "modules", MODULES_PACKAGE),
        (cwd / "backend" / "ovenly" / "modules", MODULES_PACKAGE),
        (cwd / "ovenly" / "modules", MODULES_PACKAGE),
    ]


class RouteDiscovery:
    """
    Imports route declaration modules found under the modules root.

    Args:
        candidates: Ordered (directory, dotted package) pairs to try.
                    Defaults to default_candidates().
        filenames:  Route declaration file names.
    """

    def __init__(
        self,
        candidates: Optional[Sequence[Candidate]] = None,
        filenames: Sequence[str] = ROUTE_FILENAMES,
    ):
        self._candidates = list(candidates) if candidates is not None else None
        self.filenames = tuple(filenames)

    @property
    def candidates(self) -> List[Candidate]:
        return self._candidates if self._candidates is not None else default_candidates()

    def locate_modules_root(self) -> Candidate:
        tried = []
        for directory, package in self.candidates:
            tried.append(str(directory))
            if directory.is_dir():
                return directory, package
        raise RouteDiscoveryError(
            message="Could not locate the modules directory",
            context={"tried": tried},
        )

    def find_route_files(self, root: Path) -> List[Path]:
        found = {}
        for dirpath, dirnames, filenames in os.walk(root):
            # Prune in place so os.walk never descends into caches or dotted dirs
            dirnames[:] = sorted(
                d for d in dirnames if d != "__pycache__" and not d.startswith(".")
            )
            depth = len(Path(dirpath).relative_to(root).parts)
            logger.debug("%sScanning: %s (%d entries)", "  " * depth, dirpath, len(filenames))

            for name in self.filenames:
                if name in filenames:
                    stem_path = Path(dirpath) / Path(name).stem
                    # routes.py wins over routes.pyc in the same directory
                    found.setdefault(stem_path, Path(dirpath) / name)
        return sorted(found.values())

    @staticmethod
    def module_name(root: Path, package: str, file_path: Path) -> str:
        relative = file_path.relative_to(root).with_suffix("")
        return ".".join([package, *relative.parts])

    async def discover_and_import_routes(self) -> List[str]:
        """
        Import every route module under the modules root.

        Returns the imported module names. No route files is not an error
        (a warning is logged); an unreadable root or a failing import is.
        """
        root, package = self.locate_modules_root()
        logger.info("Discovering route files in: %s", root)

        route_files = self.find_route_files(root)
        if not route_files:
            logger.warning("No route files found in modules directory.")
            return []

        logger.info("Found %d route file(s)", len(route_files))
        names = [self.module_name(root, package, f) for f in route_files]
        # Route files may have been added since the import system last listed these directories
        importlib.invalidate_caches()

        await asyncio.gather(*(self._import(name) for name in names))

        logger.info("Successfully imported %d route file(s)", len(names))
        return names

    async def _import(self, module_name: str) -> None:
        try:
            importlib.import_module(module_name)
        except Exception as e:
            logger.error("Failed to import route module %s: %s", module_name, e)
            raise
        logger.info("Imported routes from %s", module_name.rsplit(".", 2)[-2])


# Singleton instance, used by the application initializer
route_discovery = RouteDiscovery()
