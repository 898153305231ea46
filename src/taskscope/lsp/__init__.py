"""taskscope Language Server Protocol (LSP) implementation.

This package lets an editor drive taskscope: the editor reports open
documents, selections and workspace folders, and taskscope answers with
task listings, resolved contexts and spawn requests.
"""

__all__ = ["server"]
