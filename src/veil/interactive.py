"""
Interactive controller -- the keypress state machine behind a terminal UI.

Rendering and input capture live in veil.tui; this module only turns
key names into state changes and calls into the session.

Modes:
    normal        single keys are commands
    add_key       buffer is ``KEY=VALUE`` or just ``KEY`` (chains to add_value)
    add_value     buffer is the value for the pending key
    edit_value    buffer is the new value for the selected key
    filter        buffer is the filter query
    import_path   buffer is a .env path to import
    export_path   buffer is the destination path (.json -> JSON, else env)
    page_select   1/2/3 pick home/project/settings

In every input mode ``enter`` commits and ``esc`` returns to normal
without touching the bundle. Errors go to ``status`` and the controller
returns to normal, except that an unreadable import path keeps the path
prompt open; edits already applied in memory are kept even when
the save that followed them failed.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Callable, NamedTuple, Optional

from ._fs import write_private
from .bundles import find_secret, mask_value, remove_secret, sorted_secrets, upsert_secret
from .envfile import import_pairs, parse_env_content, read_env_file, render_env, render_project_json
from .errors import VeilError
from .models import KeyStorage, ProjectBundle, ProjectSummary
from .projects import sanitize_project_name
from .session import Session

logger = logging.getLogger("veil.interactive")

READY = "Ready"


class Mode(str, Enum):
    NORMAL = "normal"
    ADD_KEY = "add_key"
    ADD_VALUE = "add_value"
    EDIT_VALUE = "edit_value"
    FILTER = "filter"
    IMPORT_PATH = "import_path"
    EXPORT_PATH = "export_path"
    PAGE_SELECT = "page_select"


INPUT_MODES = frozenset(
    {
        Mode.ADD_KEY,
        Mode.ADD_VALUE,
        Mode.EDIT_VALUE,
        Mode.FILTER,
        Mode.IMPORT_PATH,
        Mode.EXPORT_PATH,
    }
)


class Page(str, Enum):
    HOME = "home"
    PROJECT = "project"
    SETTINGS = "settings"


PAGE_KEYS = {"1": Page.HOME, "2": Page.PROJECT, "3": Page.SETTINGS}


class Row(NamedTuple):
    group: str
    key: str
    value: str


def _default_sync(session: Session) -> None:
    from .sync.engine import SyncEngine

    SyncEngine(session).sync()


class InteractiveController:
    """Keypress-driven state for one interactive session.

    Args:
        session: The invocation's session.
        cwd: Directory used to resolve a project when none is selected.
        sync: Callable that runs a sync for the session.
    """

    def __init__(
        self,
        session: Session,
        cwd: Optional[Path] = None,
        sync: Callable[[Session], None] = _default_sync,
    ):
        self.session = session
        self.cwd = cwd
        self._sync = sync

        self.page = Page.HOME
        self.mode = Mode.NORMAL
        self.status = READY
        self.buffer = ""
        self.projects: list[ProjectSummary] = []
        self.current = ""
        self.bundle: Optional[ProjectBundle] = None
        self.selected = 0
        self.filter_query = ""
        self.pending_key = ""
        self.reveal_key = ""
        self.pending_reveal = ""
        self.pending_delete = ""
        self.needs_init = False
        self.quit = False
        self.load()

    # -- state loading ----------------------------------------------------

    def load(self) -> None:
        """Refresh project list and current bundle from disk."""
        self.needs_init = not self.session.is_initialized()
        if self.needs_init:
            self.status = "Run init: press i for file key storage or k for keychain"
            return
        try:
            self.projects = self.session.bundles.list_projects()
        except VeilError as exc:
            self.status = str(exc)
            return
        if not self.current and self.projects:
            self.current = self.projects[0].name
        self._load_bundle()

    def _load_bundle(self) -> None:
        if not self.current or self.needs_init:
            self.bundle = None
            return
        path = next((p.path for p in self.projects if p.name == self.current), "")
        try:
            self.bundle = self.session.bundles.load_project(self.current, path)
        except VeilError as exc:
            self.status = str(exc)

    def _ensure_bundle(self) -> ProjectBundle:
        if self.bundle is None:
            name, path = self.session.resolver.resolve(cwd=self.cwd)
            self.bundle = self.session.bundles.load_project(name, path)
            self.current = sanitize_project_name(name)
        return self.bundle

    def select_project(self, name: str) -> None:
        self.current = name
        self.selected = 0
        self.reveal_key = ""
        self._load_bundle()

    def visible_rows(self) -> list[Row]:
        """Rows for the secrets table: sorted, filtered, masked unless revealed."""
        if self.bundle is None:
            return []
        query = self.filter_query.strip().lower()
        rows = []
        for secret in sorted_secrets(self.bundle):
            if query and query not in f"{secret.key} {secret.group}".lower():
                continue
            value = secret.value if secret.key == self.reveal_key else mask_value(secret.value)
            rows.append(Row(secret.group, secret.key, value))
        return rows

    def selected_key(self) -> Optional[str]:
        rows = self.visible_rows()
        if not rows:
            return None
        return rows[min(self.selected, len(rows) - 1)].key

    # -- input handling ---------------------------------------------------

    def _begin_input(self, mode: Mode, status: str, initial: str = "") -> None:
        self.mode = mode
        self.buffer = initial
        self.status = status

    def _reset(self, status: Optional[str] = None) -> None:
        self.mode = Mode.NORMAL
        self.buffer = ""
        self.pending_key = ""
        if status is not None:
            self.status = status

    def type_text(self, text: str) -> None:
        """Append typed characters to the input buffer."""
        if self.mode in INPUT_MODES:
            self.buffer += text

    def press(self, key: str) -> None:
        """Handle one key name (``"a"``, ``"enter"``, ``"esc"``, ``"down"``...)."""
        if self.mode == Mode.PAGE_SELECT:
            self._press_page_select(key)
        elif self.mode in INPUT_MODES:
            self._press_input(key)
        else:
            self._press_normal(key)

    def _press_page_select(self, key: str) -> None:
        if key in PAGE_KEYS:
            self.page = PAGE_KEYS[key]
            self._reset(READY)
        elif key == "esc":
            self._reset(READY)

    def _press_input(self, key: str) -> None:
        if key == "esc":
            self._reset("Cancelled")
        elif key == "enter":
            try:
                self._commit()
            except VeilError as exc:
                self._reset(str(exc))
            except OSError as exc:
                self.status = exc.strerror or str(exc)
        elif key == "backspace":
            self.buffer = self.buffer[:-1]
        elif len(key) == 1:
            self.buffer += key

    def _save(self, message: str) -> None:
        # The bundle is already mutated; a failed save leaves it dirty in memory.
        try:
            self.session.bundles.save_project(self.bundle)
        except VeilError as exc:
            self.status = str(exc)
            return
        self.status = message
        self.load()

    def _commit(self) -> None:
        mode = self.mode
        if mode == Mode.ADD_KEY:
            self._ensure_bundle()
            key, sep, value = self.buffer.strip().partition("=")
            key = key.strip()
            if not key:
                self.status = "Use format KEY=VALUE"
                return
            if not sep:
                self.mode = Mode.ADD_VALUE
                self.pending_key = key
                self.buffer = ""
                self.status = f"Enter value for {key}"
                return
            upsert_secret(self.bundle, key, value)
            self._reset()
            self._save(f"Saved secret {key}")

        elif mode in (Mode.ADD_VALUE, Mode.EDIT_VALUE):
            key = self.pending_key
            if self.bundle is None or not key:
                self._reset("Nothing selected")
                return
            upsert_secret(self.bundle, key, self.buffer)
            self._reset()
            verb = "Saved" if mode == Mode.ADD_VALUE else "Updated"
            self._save(f"{verb} secret {key}")

        elif mode == Mode.FILTER:
            self.filter_query = self.buffer.strip()
            self.selected = 0
            self._reset("Filter applied")

        elif mode == Mode.IMPORT_PATH:
            path = self.buffer.strip()
            if self.bundle is None or not path:
                self.status = "Import path is required"
                return
            try:
                pairs = parse_env_content(read_env_file(Path(path)))
            except VeilError as exc:
                self.status = str(exc)
                return
            import_pairs(self.bundle, pairs)
            self._reset()
            self._save(f"Imported {len(pairs)} keys")

        elif mode == Mode.EXPORT_PATH:
            path = self.buffer.strip()
            if self.bundle is None or not path:
                self.status = "Export path is required"
                return
            if path.lower().endswith(".json"):
                output = render_project_json(self.bundle)
            else:
                output = render_env(self.bundle)
            write_private(Path(path).expanduser(), output)
            self._reset(f"Exported to {path}")

    def _init(self, mode: KeyStorage) -> None:
        try:
            self.session.init(mode.value)
        except VeilError as exc:
            self.status = str(exc)
            return
        self.status = f"Initialized with {mode.value} key storage"
        self.load()

    def _press_normal(self, key: str) -> None:
        in_table = self.page == Page.PROJECT and self.bundle is not None

        if key in ("q", "ctrl+c"):
            self.quit = True
        elif key == "esc":
            self.buffer = ""
            self.status = READY
        elif key == "P":
            self.mode = Mode.PAGE_SELECT
            self.status = "Select page"
        elif key == "l" and self.page == Page.HOME:
            self.page = Page.PROJECT
            self.status = READY
        elif key in ("up", "down") and in_table:
            rows = len(self.visible_rows())
            step = -1 if key == "up" else 1
            self.selected = max(0, min(rows - 1, self.selected + step))
        elif key == "i":
            if self.needs_init:
                self._init(KeyStorage.FILE)
            elif self.page in (Page.HOME, Page.PROJECT):
                try:
                    self._ensure_bundle()
                except VeilError as exc:
                    self.status = str(exc)
                    return
                self._begin_input(Mode.IMPORT_PATH, "Enter .env file path")
        elif key == "k":
            if self.needs_init:
                self._init(KeyStorage.KEYCHAIN)
        elif key == "S":
            if self.needs_init:
                return
            try:
                self._sync(self.session)
            except VeilError as exc:
                self.status = str(exc)
                return
            self.status = "Synced"
            self.load()
        elif key == "a":
            if self.needs_init or self.page not in (Page.HOME, Page.PROJECT):
                return
            try:
                self._ensure_bundle()
            except VeilError as exc:
                self.status = str(exc)
                return
            self._begin_input(Mode.ADD_KEY, "Enter KEY=VALUE")
        elif key == "e" and in_table:
            selected = find_secret(self.bundle, self.selected_key() or "")
            if selected is None:
                return
            self.pending_key = selected.key
            self._begin_input(Mode.EDIT_VALUE, f"Edit value for {selected.key}", selected.value)
        elif key == "x" and in_table and not self.needs_init:
            self._begin_input(Mode.EXPORT_PATH, "Enter export destination", f"{self.current}.env")
        elif key == "/" and self.page == Page.PROJECT:
            self._begin_input(Mode.FILTER, "Type filter query", self.filter_query)
        elif key == "r" and in_table:
            self._toggle_reveal()
        elif key == "d" and in_table:
            self._delete_selected()

    def _toggle_reveal(self) -> None:
        key = self.selected_key()
        if key is None:
            return
        if self.reveal_key == key:
            self.reveal_key = ""
            self.pending_reveal = ""
            self.status = "Masked"
        elif self.pending_reveal != key:
            self.pending_reveal = key
            self.status = f"Press r again to reveal {key}"
        else:
            self.reveal_key = key
            self.pending_reveal = ""
            self.status = f"Revealed {key}"

    def _delete_selected(self) -> None:
        key = self.selected_key()
        if key is None:
            return
        if self.pending_delete != key:
            self.pending_delete = key
            self.status = f"Press d again to delete {key}"
            return
        self.pending_delete = ""
        if not remove_secret(self.bundle, key):
            return
        if self.reveal_key == key:
            self.reveal_key = ""
        self._save(f"Deleted {key}")
