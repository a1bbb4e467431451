from django.core.files.uploadedfile import UploadedFile
from django.db import transaction

from .lifecycle import UploadOperation, stage_upload
from .registry import registry


def capture_uploads(instance, files):
    """
    Stage uploaded files for every registered attribute of ``instance``.

    ``files`` is any mapping of attribute name to file, usually
    ``request.FILES``. Values that are not uploaded files are ignored.
    Returns the names of the staged attributes.
    """
    staged = []
    if not files:
        return staged
    for config in registry.get_configs(type(instance)):
        uploaded_file = files.get(config.attribute)
        if isinstance(uploaded_file, UploadedFile):
            stage_upload(instance, config, uploaded_file)
            staged.append(config.attribute)
    return staged


def save_with_uploads(instance, files=None, validate=True, **save_kwargs):
    """
    Capture, validate and save ``instance`` in one transaction.

    If writing a staged file fails, the row is rolled back along with it.
    """
    try:
        with transaction.atomic():
            capture_uploads(instance, files)
            if validate:
                instance.full_clean()
            instance.save(**save_kwargs)
    except Exception:
        UploadOperation.pop(instance)
        raise
    return instance


def get_uploaded_file_path(instance, attribute):
    return registry.get_config(type(instance), attribute).resolve_path(instance)


def get_uploaded_file_url(instance, attribute):
    return registry.get_config(type(instance), attribute).resolve_url(instance)
