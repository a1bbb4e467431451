from .services import get_uploaded_file_path, get_uploaded_file_url


class FileUploadMixin:
    """
    A mixin for models with registered uploads.
    It exposes the resolved storage path and public URL of each upload attribute.
    """
    def get_uploaded_file_path(self, attribute):
        return get_uploaded_file_path(self, attribute)

    def get_uploaded_file_url(self, attribute):
        return get_uploaded_file_url(self, attribute)
