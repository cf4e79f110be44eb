"""Static description of the LSP feature surface forwarded to the engine.

Each entry names the wire method, the engine coroutine that serves it and
the lsprotocol type its params structure into.
"""

from __future__ import annotations

from dataclasses import dataclass

from lsprotocol import types


@dataclass(frozen=True)
class FeatureRoute:
    method: str
    operation: str
    params_type: type


FEATURE_REQUESTS: tuple[FeatureRoute, ...] = (
    FeatureRoute(types.WORKSPACE_SYMBOL, "workspace_symbol", types.WorkspaceSymbolParams),
    FeatureRoute(
        types.WORKSPACE_EXECUTE_COMMAND, "execute_command", types.ExecuteCommandParams
    ),
    FeatureRoute(
        types.TEXT_DOCUMENT_WILL_SAVE_WAIT_UNTIL,
        "will_save_wait_until",
        types.WillSaveTextDocumentParams,
    ),
    FeatureRoute(types.TEXT_DOCUMENT_COMPLETION, "completion", types.CompletionParams),
    FeatureRoute(types.COMPLETION_ITEM_RESOLVE, "completion_item_resolve", types.CompletionItem),
    FeatureRoute(types.TEXT_DOCUMENT_HOVER, "hover", types.HoverParams),
    FeatureRoute(
        types.TEXT_DOCUMENT_SIGNATURE_HELP, "signature_help", types.SignatureHelpParams
    ),
    FeatureRoute(types.TEXT_DOCUMENT_DEFINITION, "definition", types.DefinitionParams),
    FeatureRoute(types.TEXT_DOCUMENT_REFERENCES, "references", types.ReferenceParams),
    FeatureRoute(
        types.TEXT_DOCUMENT_DOCUMENT_HIGHLIGHT,
        "document_highlight",
        types.DocumentHighlightParams,
    ),
    FeatureRoute(
        types.TEXT_DOCUMENT_DOCUMENT_SYMBOL, "document_symbol", types.DocumentSymbolParams
    ),
    FeatureRoute(types.TEXT_DOCUMENT_CODE_ACTION, "code_action", types.CodeActionParams),
    FeatureRoute(types.TEXT_DOCUMENT_CODE_LENS, "code_lens", types.CodeLensParams),
    FeatureRoute(types.CODE_LENS_RESOLVE, "code_lens_resolve", types.CodeLens),
    FeatureRoute(types.TEXT_DOCUMENT_DOCUMENT_LINK, "document_link", types.DocumentLinkParams),
    FeatureRoute(types.DOCUMENT_LINK_RESOLVE, "document_link_resolve", types.DocumentLink),
    FeatureRoute(
        types.TEXT_DOCUMENT_FORMATTING, "formatting", types.DocumentFormattingParams
    ),
    FeatureRoute(
        types.TEXT_DOCUMENT_RANGE_FORMATTING,
        "range_formatting",
        types.DocumentRangeFormattingParams,
    ),
    FeatureRoute(
        types.TEXT_DOCUMENT_ON_TYPE_FORMATTING,
        "on_type_formatting",
        types.DocumentOnTypeFormattingParams,
    ),
    FeatureRoute(types.TEXT_DOCUMENT_RENAME, "rename", types.RenameParams),
)

FEATURE_NOTIFICATIONS: tuple[FeatureRoute, ...] = (
    FeatureRoute(
        types.WORKSPACE_DID_CHANGE_CONFIGURATION,
        "did_change_configuration",
        types.DidChangeConfigurationParams,
    ),
    FeatureRoute(
        types.WORKSPACE_DID_CHANGE_WATCHED_FILES,
        "did_change_watched_files",
        types.DidChangeWatchedFilesParams,
    ),
    FeatureRoute(types.TEXT_DOCUMENT_DID_OPEN, "did_open", types.DidOpenTextDocumentParams),
    FeatureRoute(
        types.TEXT_DOCUMENT_DID_CHANGE, "did_change", types.DidChangeTextDocumentParams
    ),
    FeatureRoute(types.TEXT_DOCUMENT_WILL_SAVE, "will_save", types.WillSaveTextDocumentParams),
    FeatureRoute(types.TEXT_DOCUMENT_DID_SAVE, "did_save", types.DidSaveTextDocumentParams),
    FeatureRoute(
        types.TEXT_DOCUMENT_DID_CLOSE, "did_close", types.DidCloseTextDocumentParams
    ),
)
