from queuewatch.operations.export import ExportFormat, parse_export, render_export
from queuewatch.operations.message_operations import MessageOperations

__all__ = ["ExportFormat", "MessageOperations", "parse_export", "render_export"]
