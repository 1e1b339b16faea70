from .client import ConnectionState, LspClient, RpcOutcome
from .diagnostics import DiagnosticRecord, DiagnosticReport, translate_diagnostics
from .protocol import Envelope, decode_envelope, encode_envelope, file_uri

__all__ = [
    "ConnectionState",
    "DiagnosticRecord",
    "DiagnosticReport",
    "Envelope",
    "LspClient",
    "RpcOutcome",
    "decode_envelope",
    "encode_envelope",
    "file_uri",
    "translate_diagnostics",
]
