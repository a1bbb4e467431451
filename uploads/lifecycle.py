import logging
import os
from dataclasses import dataclass, field
from typing import Dict

from django.core.files.uploadedfile import UploadedFile
from django.db import transaction

from . import conf
from .exceptions import FileSaveError
from .placeholders import join_name, split_name
from .signals import file_saved

logger = logging.getLogger('file_upload')

OPERATION_ATTR = '_upload_operation'


@dataclass
class PendingUpload:
    """An uploaded file waiting for its record to be saved."""
    file: UploadedFile

    @property
    def filename(self):
        return split_name(self.file)[0]

    @property
    def extension(self):
        return split_name(self.file)[1].lower()

    @property
    def stored_name(self):
        """The value written to the model attribute, e.g. ``photo.jpg``."""
        return join_name(self.filename, self.extension)


@dataclass
class UploadOperation:
    """
    State shared by the hooks of a single save.

    Created when a file is staged or a stored file has to move, consumed by
    ``after_save``. ``replaced`` holds the resolved path of the file each
    pending upload supersedes. ``relocated`` holds the old path of stored
    files whose resolved path changed without a new upload.
    """
    pending: Dict[str, PendingUpload] = field(default_factory=dict)
    replaced: Dict[str, str] = field(default_factory=dict)
    relocated: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def for_instance(cls, instance):
        operation = getattr(instance, OPERATION_ATTR, None)
        if operation is None:
            operation = cls()
            setattr(instance, OPERATION_ATTR, operation)
        return operation

    @staticmethod
    def pop(instance):
        return instance.__dict__.pop(OPERATION_ATTR, None)


def stage_upload(instance, config, uploaded_file):
    """Hold ``uploaded_file`` for the next save and expose it on the attribute."""
    operation = UploadOperation.for_instance(instance)
    operation.pending[config.attribute] = PendingUpload(uploaded_file)
    setattr(instance, config.attribute, uploaded_file)
    logger.debug(f"Staged upload {uploaded_file.name!r} for {config}")
    return operation


def make_parent_dirs(path):
    directory = os.path.dirname(path)
    if not directory:
        return
    dir_mode = conf.directory_permissions()
    if dir_mode is None:
        os.makedirs(directory, exist_ok=True)
    else:
        os.makedirs(directory, dir_mode, exist_ok=True)


def write_upload(uploaded_file, path):
    try:
        make_parent_dirs(path)
        with open(path, 'wb') as destination:
            for chunk in uploaded_file.chunks():
                destination.write(chunk)
        file_mode = conf.file_permissions()
        if file_mode is not None:
            os.chmod(path, file_mode)
    except OSError as exc:
        logger.error(f"Could not write upload to {path}: {exc}")
        raise FileSaveError(path) from exc
    logger.debug(f"Wrote {uploaded_file.size} bytes to {path}")


def move_file(old_path, new_path):
    """Move a stored file whose resolved path changed. A missing source is skipped."""
    try:
        make_parent_dirs(new_path)
        os.replace(old_path, new_path)
    except FileNotFoundError:
        if not os.path.exists(old_path):
            logger.debug(f"Nothing to move at {old_path}")
            return
        logger.error(f"Could not move {old_path} to {new_path}")
        raise FileSaveError(new_path)
    except OSError as exc:
        logger.error(f"Could not move {old_path} to {new_path}: {exc}")
        raise FileSaveError(new_path) from exc
    logger.debug(f"Moved {old_path} to {new_path}")


def remove_file(path):
    """Delete ``path`` if it exists. Failures are logged, never raised."""
    try:
        os.remove(path)
    except FileNotFoundError:
        return
    except OSError as exc:
        logger.warning(f"Could not remove {path}: {exc}")
        return
    logger.debug(f"Removed {path}")


def before_save(sender, instance, configs):
    previous = None
    if not instance._state.adding and instance.pk is not None:
        previous = sender._default_manager.filter(pk=instance.pk).first()

    for config in configs:
        value = getattr(instance, config.attribute, None)
        operation = getattr(instance, OPERATION_ATTR, None)
        if isinstance(value, UploadedFile) and (operation is None or config.attribute not in operation.pending):
            operation = stage_upload(instance, config, value)
        staged = operation is not None and config.attribute in operation.pending

        if previous is not None and getattr(previous, config.attribute):
            old_path = config.resolve_path(previous)
            if staged:
                operation.replaced[config.attribute] = old_path
            elif value and config.resolve_path(instance) != old_path:
                # e.g. [[parent_id]] changed, the stored file has to follow
                UploadOperation.for_instance(instance).relocated[config.attribute] = old_path

        if staged:
            setattr(instance, config.attribute, operation.pending[config.attribute].stored_name)


def after_save(sender, instance, configs):
    operation = UploadOperation.pop(instance)
    if operation is None:
        return
    for config in configs:
        relocated_from = operation.relocated.get(config.attribute)
        if relocated_from:
            move_file(relocated_from, config.resolve_path(instance))
            continue

        pending = operation.pending.get(config.attribute)
        if pending is None:
            continue
        path = config.resolve_path(instance)
        write_upload(pending.file, path)

        old_path = operation.replaced.get(config.attribute)
        if old_path and old_path != path:
            transaction.on_commit(lambda old_path=old_path: remove_file(old_path), using=instance._state.db)

        file_saved.send(sender=sender, instance=instance, attribute=config.attribute, path=path)


def before_delete(sender, instance, configs):
    for config in configs:
        if not getattr(instance, config.attribute):
            continue
        path = config.resolve_path(instance)
        transaction.on_commit(lambda path=path: remove_file(path), using=instance._state.db)
