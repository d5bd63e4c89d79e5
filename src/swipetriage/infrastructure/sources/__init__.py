from .filesystem_source import FilesystemAssetSource

__all__ = ["FilesystemAssetSource"]
