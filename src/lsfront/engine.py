"""Contract between the protocol front-end and an analysis engine.

An engine answers one coroutine per LSP feature and pushes asynchronous
events through its ``EventHub``. This base class answers every feature with
an empty result, so a concrete engine overrides only what it supports and
advertises it in ``server_capabilities``.
"""

from __future__ import annotations

import importlib
from collections import defaultdict
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Sequence

from loguru import logger
from lsprotocol import types

from lsfront.exceptions import ConfigError

if TYPE_CHECKING:
    from lsfront.cancellation import CancellationHandle
    from lsfront.config import ServerSettings


class EngineEvent(str, Enum):
    LOG_MESSAGE = "log_message"
    SHOW_MESSAGE = "show_message"
    TELEMETRY = "telemetry"
    PUBLISH_DIAGNOSTICS = "publish_diagnostics"
    APPLY_WORKSPACE_EDIT = "apply_workspace_edit"
    REGISTER_CAPABILITY = "register_capability"
    UNREGISTER_CAPABILITY = "unregister_capability"


EventHandler = Callable[[Any], None]


class EventHub:
    def __init__(self) -> None:
        self._handlers: defaultdict[EngineEvent, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event: EngineEvent, handler: EventHandler) -> None:
        self._handlers[EngineEvent(event)].append(handler)

    def unsubscribe(self, event: EngineEvent, handler: EventHandler) -> None:
        handlers = self._handlers[EngineEvent(event)]
        try:
            handlers.remove(handler)
        except ValueError:
            raise LookupError(f"handler is not subscribed to {event}") from None

    def handler_count(self, event: EngineEvent | None = None) -> int:
        if event is not None:
            return len(self._handlers[EngineEvent(event)])
        return sum(len(handlers) for handlers in self._handlers.values())

    def emit(self, event: EngineEvent, payload: Any) -> int:
        delivered = 0
        for handler in list(self._handlers[EngineEvent(event)]):
            try:
                handler(payload)
            except Exception:
                logger.exception("event handler for {} failed", event.value)
                continue
            delivered += 1
        return delivered


class Engine:
    def __init__(self, settings: ServerSettings | None = None) -> None:
        self.name = settings.name if settings is not None else "lsfront"
        self.version = settings.version if settings is not None else None
        self.events = EventHub()

    # Capability negotiation and lifetime

    def server_capabilities(self) -> types.ServerCapabilities:
        return types.ServerCapabilities(
            text_document_sync=types.TextDocumentSyncOptions(
                open_close=True,
                change=types.TextDocumentSyncKind.Incremental,
                save=types.SaveOptions(include_text=False),
            ),
        )

    async def initialize(self, params: types.InitializeParams) -> types.InitializeResult:
        return types.InitializeResult(
            capabilities=self.server_capabilities(),
            server_info=types.ServerInfo(name=self.name, version=self.version),
        )

    async def initialized(self, params: types.InitializedParams) -> None:
        return None

    async def shutdown(self) -> None:
        return None

    async def exit(self) -> None:
        return None

    def dispose(self) -> None:
        """Release engine resources; called once at session teardown."""
        return None

    # Workspace

    async def did_change_configuration(
        self, params: types.DidChangeConfigurationParams
    ) -> None:
        return None

    async def did_change_watched_files(
        self, params: types.DidChangeWatchedFilesParams
    ) -> None:
        return None

    async def workspace_symbol(
        self, params: types.WorkspaceSymbolParams, token: CancellationHandle
    ) -> Sequence[types.SymbolInformation] | None:
        return None

    async def execute_command(
        self, params: types.ExecuteCommandParams, token: CancellationHandle
    ) -> Any:
        return None

    # Document synchronisation

    async def did_open(self, params: types.DidOpenTextDocumentParams) -> None:
        return None

    async def did_change(self, params: types.DidChangeTextDocumentParams) -> None:
        return None

    async def will_save(self, params: types.WillSaveTextDocumentParams) -> None:
        return None

    async def will_save_wait_until(
        self, params: types.WillSaveTextDocumentParams, token: CancellationHandle
    ) -> Sequence[types.TextEdit] | None:
        return None

    async def did_save(self, params: types.DidSaveTextDocumentParams) -> None:
        return None

    async def did_close(self, params: types.DidCloseTextDocumentParams) -> None:
        return None

    # Editor features

    async def completion(
        self, params: types.CompletionParams, token: CancellationHandle
    ) -> types.CompletionList | Sequence[types.CompletionItem] | None:
        return None

    async def completion_item_resolve(
        self, params: types.CompletionItem, token: CancellationHandle
    ) -> types.CompletionItem:
        return params

    async def hover(
        self, params: types.HoverParams, token: CancellationHandle
    ) -> types.Hover | None:
        return None

    async def signature_help(
        self, params: types.SignatureHelpParams, token: CancellationHandle
    ) -> types.SignatureHelp | None:
        return None

    async def definition(
        self, params: types.DefinitionParams, token: CancellationHandle
    ) -> Sequence[types.Location] | None:
        return None

    async def references(
        self, params: types.ReferenceParams, token: CancellationHandle
    ) -> Sequence[types.Location] | None:
        return None

    async def document_highlight(
        self, params: types.DocumentHighlightParams, token: CancellationHandle
    ) -> Sequence[types.DocumentHighlight] | None:
        return None

    async def document_symbol(
        self, params: types.DocumentSymbolParams, token: CancellationHandle
    ) -> Sequence[types.SymbolInformation] | None:
        return None

    async def code_action(
        self, params: types.CodeActionParams, token: CancellationHandle
    ) -> Sequence[types.Command | types.CodeAction] | None:
        return None

    async def code_lens(
        self, params: types.CodeLensParams, token: CancellationHandle
    ) -> Sequence[types.CodeLens] | None:
        return None

    async def code_lens_resolve(
        self, params: types.CodeLens, token: CancellationHandle
    ) -> types.CodeLens:
        return params

    async def document_link(
        self, params: types.DocumentLinkParams, token: CancellationHandle
    ) -> Sequence[types.DocumentLink] | None:
        return None

    async def document_link_resolve(
        self, params: types.DocumentLink, token: CancellationHandle
    ) -> types.DocumentLink:
        return params

    async def formatting(
        self, params: types.DocumentFormattingParams, token: CancellationHandle
    ) -> Sequence[types.TextEdit] | None:
        return None

    async def range_formatting(
        self, params: types.DocumentRangeFormattingParams, token: CancellationHandle
    ) -> Sequence[types.TextEdit] | None:
        return None

    async def on_type_formatting(
        self, params: types.DocumentOnTypeFormattingParams, token: CancellationHandle
    ) -> Sequence[types.TextEdit] | None:
        return None

    async def rename(
        self, params: types.RenameParams, token: CancellationHandle
    ) -> types.WorkspaceEdit | None:
        return None

    # Event emitters

    def log_message(
        self, message: str, message_type: types.MessageType = types.MessageType.Log
    ) -> int:
        return self.events.emit(
            EngineEvent.LOG_MESSAGE,
            types.LogMessageParams(type=message_type, message=message),
        )

    def show_message(
        self, message: str, message_type: types.MessageType = types.MessageType.Info
    ) -> int:
        return self.events.emit(
            EngineEvent.SHOW_MESSAGE,
            types.ShowMessageParams(type=message_type, message=message),
        )

    def send_telemetry(self, data: Any) -> int:
        return self.events.emit(EngineEvent.TELEMETRY, data)

    def publish_diagnostics(
        self,
        uri: str,
        diagnostics: Sequence[types.Diagnostic],
        version: int | None = None,
    ) -> int:
        return self.events.emit(
            EngineEvent.PUBLISH_DIAGNOSTICS,
            types.PublishDiagnosticsParams(
                uri=uri, diagnostics=list(diagnostics), version=version
            ),
        )

    def apply_edit(self, edit: types.WorkspaceEdit, label: str | None = None) -> int:
        return self.events.emit(
            EngineEvent.APPLY_WORKSPACE_EDIT,
            types.ApplyWorkspaceEditParams(edit=edit, label=label),
        )

    def register_capability(self, registrations: Sequence[types.Registration]) -> int:
        return self.events.emit(
            EngineEvent.REGISTER_CAPABILITY,
            types.RegistrationParams(registrations=list(registrations)),
        )

    def unregister_capability(
        self, unregistrations: Sequence[types.Unregistration]
    ) -> int:
        return self.events.emit(
            EngineEvent.UNREGISTER_CAPABILITY,
            types.UnregistrationParams(unregisterations=list(unregistrations)),
        )


EngineFactory = Callable[["ServerSettings"], Engine]


def load_engine_factory(reference: str) -> EngineFactory:
    """Resolve ``package.module:attribute`` to an engine factory."""
    module_name, sep, attribute = reference.partition(":")
    if not sep or not module_name or not attribute:
        raise ConfigError(f"engine reference must look like 'module:factory': {reference!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigError(f"cannot import engine module {module_name!r}: {exc}") from exc
    target: object = module
    for part in attribute.split("."):
        try:
            target = getattr(target, part)
        except AttributeError:
            raise ConfigError(f"{module_name!r} has no attribute {attribute!r}") from None
    if not callable(target):
        raise ConfigError(f"engine factory {reference!r} is not callable")
    return target
