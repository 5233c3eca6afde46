"""Adapters for the local documents: task-line codec, outline and document access"""

from tasksync.documents.source import DocumentError, DocumentSource, FilesystemDocumentSource
from tasksync.documents.task_line import TaskLineCodec

__all__ = ["DocumentError", "DocumentSource", "FilesystemDocumentSource", "TaskLineCodec"]
