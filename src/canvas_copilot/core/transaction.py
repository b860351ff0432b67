"""mutation transaction: buffered edits applied as one atomic batch.

deferred operations queued with defer() run after the batch has committed,
in the order they were queued. they are outside the atomic guarantee.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from .errors import ErrorReporter, TransactionError, get_reporter
from .models import ElementKind, MindmapTree, Rect, generate_id
from .store import DocumentStore

logger = logging.getLogger(__name__)


class TransactionState(Enum):
    IDLE = "idle"
    OPEN = "open"
    COMMITTED = "committed"
    DISCARDED = "discarded"


class MutationKind(Enum):
    CREATE = "create"
    UPDATE = "update"
    REPARENT = "reparent"
    REMOVE = "remove"
    BIND_BLOB = "bind_blob"


@dataclass
class PendingMutation:
    """one buffered edit."""

    kind: MutationKind
    target_id: str
    args: dict[str, Any] = field(default_factory=dict)


class MutationTransaction:
    """collects mutations for a single action invocation."""

    def __init__(self, store: DocumentStore, reporter: Optional[ErrorReporter] = None):
        self.store = store
        self.reporter = reporter or get_reporter()
        self.state = TransactionState.IDLE
        self.mutations: list[PendingMutation] = []
        self.deferred: list[Callable[[], Any]] = []

    def open(self) -> MutationTransaction:
        if self.state != TransactionState.IDLE:
            raise TransactionError(f"transaction already {self.state.value}")
        self.state = TransactionState.OPEN
        return self

    def __enter__(self) -> MutationTransaction:
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.discard()
            return
        self.commit()

    def _require_open(self) -> None:
        if self.state != TransactionState.OPEN:
            raise TransactionError(f"transaction is {self.state.value}, not open")

    def _buffer(self, mutation_kind: MutationKind, target_id: str, **args: Any) -> None:
        self._require_open()
        self.mutations.append(PendingMutation(mutation_kind, target_id, args))

    # --- buffered mutations ---

    def create_element(
        self,
        kind: ElementKind,
        xywh: Rect,
        props: Optional[dict] = None,
        parent_id: Optional[str] = None,
        group_id: Optional[str] = None,
        tree: Optional[MindmapTree] = None,
        element_id: Optional[str] = None,
    ) -> str:
        """buffer an element creation. the id is allocated now."""
        element_id = element_id or generate_id()
        self._buffer(
            MutationKind.CREATE,
            element_id,
            kind=kind,
            xywh=xywh,
            props=props,
            parent_id=parent_id,
            group_id=group_id,
            tree=tree,
        )
        return element_id

    def add_block(self, flavour: str, props: Optional[dict] = None, parent_id: Optional[str] = None) -> str:
        block_id = generate_id()
        self._buffer(MutationKind.CREATE, block_id, flavour=flavour, props=props, parent_id=parent_id)
        return block_id

    def update_element(self, element_id: str, **changes: Any) -> None:
        self._buffer(MutationKind.UPDATE, element_id, **changes)

    def update_geometry(self, element_id: str, xywh: Rect) -> None:
        self.update_element(element_id, xywh=xywh)

    def reparent(self, element_id: str, parent_id: str) -> None:
        self._buffer(MutationKind.REPARENT, element_id, parent_id=parent_id)

    def remove_element(self, element_id: str) -> None:
        self._buffer(MutationKind.REMOVE, element_id)

    def bind_blob(self, asset_id: str, data: bytes) -> None:
        self._buffer(MutationKind.BIND_BLOB, asset_id, data=data)

    def defer(self, operation: Callable[[], Any]) -> None:
        """run operation after commit."""
        self._require_open()
        self.deferred.append(operation)

    # --- lifecycle ---

    def commit(self) -> None:
        """apply every buffered mutation atomically, then run deferred ops."""
        self._require_open()
        if self.mutations:
            try:
                self.store.transact(self._apply_all)
            except Exception:
                self.state = TransactionState.DISCARDED
                raise
        self.state = TransactionState.COMMITTED
        logger.debug("committed %d mutations", len(self.mutations))

        for operation in self.deferred:
            try:
                operation()
            except Exception as e:
                # committed edits stay
                self.reporter.report(e, "deferred operation")

    def discard(self) -> None:
        """drop the buffer without touching the store."""
        if self.state == TransactionState.OPEN:
            self.state = TransactionState.DISCARDED
            self.mutations.clear()
            self.deferred.clear()

    def _apply_all(self) -> None:
        for mutation in self.mutations:
            self._apply(mutation)

    def _apply(self, mutation: PendingMutation) -> None:
        args = mutation.args
        if mutation.kind == MutationKind.CREATE:
            if "flavour" in args:
                self.store.add_block(
                    args["flavour"], args["props"], args["parent_id"], block_id=mutation.target_id
                )
            else:
                self.store.add_element(element_id=mutation.target_id, **args)
        elif mutation.kind == MutationKind.UPDATE:
            self.store.update_element(mutation.target_id, **args)
        elif mutation.kind == MutationKind.REPARENT:
            self.store.reparent(mutation.target_id, args["parent_id"])
        elif mutation.kind == MutationKind.REMOVE:
            self.store.remove_element(mutation.target_id)
        elif mutation.kind == MutationKind.BIND_BLOB:
            self.store.bind_blob(mutation.target_id, args["data"])
