from django.core.exceptions import ImproperlyConfigured


class FileUploadError(Exception):
    """Base class for errors raised by the uploads app."""


class UploadNotConfigured(FileUploadError, ImproperlyConfigured):
    """No upload is registered for the requested model attribute."""

    def __init__(self, model, attribute):
        self.model = model
        self.attribute = attribute
        super().__init__(f"Missing upload configuration for {model.__name__}.{attribute!r}")


class FileSaveError(FileUploadError):
    """The uploaded file could not be written to its resolved path."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"File saving error: {path}")


class InvalidAliasError(FileUploadError):
    def __init__(self, alias):
        self.alias = alias
        super().__init__(f"Invalid path alias: {alias}")
