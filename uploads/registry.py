from dataclasses import dataclass
from typing import Optional

from django.core.exceptions import FieldDoesNotExist, ImproperlyConfigured
from django.db.models.signals import post_save, pre_delete, pre_save

from . import conf, lifecycle
from .exceptions import UploadNotConfigured
from .placeholders import ResolutionContext, resolve


@dataclass(frozen=True)
class UploadConfig:
    """Where one model attribute's uploads are stored and served from."""
    model: type
    attribute: str = 'upload'
    file_path: str = '[[web_root]]/uploads/[[id]].[[extension]]'
    file_url: str = '/uploads/[[id]].[[extension]]'
    parent_relation_attribute: Optional[str] = None

    def __str__(self):
        return f"{self.model.__name__}.{self.attribute}"

    def context_for(self, instance):
        parent_id = None
        if self.parent_relation_attribute:
            parent_value = getattr(instance, self.parent_relation_attribute)
            parent_id = '' if parent_value is None else str(parent_value)
        return ResolutionContext(
            app_root=conf.app_root(),
            web_root=conf.web_root(),
            base_url=conf.base_url(),
            model_name=instance._meta.object_name,
            attribute=self.attribute,
            pk=instance.pk,
            parent_id=parent_id,
            value=getattr(instance, self.attribute),
            aliases=conf.aliases(),
        )

    def resolve_path(self, instance):
        return resolve(self.file_path, self.context_for(instance))

    def resolve_url(self, instance):
        return resolve(self.file_url, self.context_for(instance))


class UploadRegistry:
    """
    Maps models to the upload configuration of each of their attributes and
    wires the model lifecycle signals for every registered model.
    """

    def __init__(self):
        self._configs = {}

    def register(self, model, attribute='upload', file_path=None, file_url=None, parent_relation_attribute=None):
        """
        Register ``attribute`` of ``model`` as an upload.

        Usage::

            register(
                Document,
                attribute='file',
                file_path='[[web_root]]/documents/[[id_path]]/[[basename]]',
                file_url='[[base_url]]/documents/[[id_path]]/[[basename]]',
            )
        """
        options = {}
        if file_path is not None:
            options['file_path'] = file_path
        if file_url is not None:
            options['file_url'] = file_url
        config = UploadConfig(model, attribute, parent_relation_attribute=parent_relation_attribute, **options)

        try:
            model._meta.get_field(attribute)
        except FieldDoesNotExist:
            raise ImproperlyConfigured(f"{model.__name__} has no field named {attribute!r}")

        model_configs = self._configs.setdefault(model, {})
        if attribute in model_configs:
            raise ImproperlyConfigured(f"{config} is already registered")
        if not model_configs:
            self._connect(model)
        model_configs[attribute] = config
        return config

    def unregister(self, model):
        if self._configs.pop(model, None) is not None:
            self._disconnect(model)

    def contains(self, model):
        return model in self._configs

    def get_configs(self, model):
        for klass in model.__mro__:
            if klass in self._configs:
                return list(self._configs[klass].values())
        return []

    def get_config(self, model, attribute):
        for config in self.get_configs(model):
            if config.attribute == attribute:
                return config
        raise UploadNotConfigured(model, attribute)

    def _dispatch_uid(self, signal_name, model):
        return f"uploads.{id(self)}.{signal_name}.{model._meta.label}"

    def _connect(self, model):
        pre_save.connect(self._pre_save, sender=model, dispatch_uid=self._dispatch_uid('pre_save', model))
        post_save.connect(self._post_save, sender=model, dispatch_uid=self._dispatch_uid('post_save', model))
        pre_delete.connect(self._pre_delete, sender=model, dispatch_uid=self._dispatch_uid('pre_delete', model))

    def _disconnect(self, model):
        pre_save.disconnect(sender=model, dispatch_uid=self._dispatch_uid('pre_save', model))
        post_save.disconnect(sender=model, dispatch_uid=self._dispatch_uid('post_save', model))
        pre_delete.disconnect(sender=model, dispatch_uid=self._dispatch_uid('pre_delete', model))

    def _pre_save(self, sender, instance, raw=False, **kwargs):
        # Fixture loading stores the attribute as-is.
        if raw:
            return
        lifecycle.before_save(sender, instance, self.get_configs(sender))

    def _post_save(self, sender, instance, raw=False, **kwargs):
        if raw:
            return
        lifecycle.after_save(sender, instance, self.get_configs(sender))

    def _pre_delete(self, sender, instance, **kwargs):
        lifecycle.before_delete(sender, instance, self.get_configs(sender))


registry = UploadRegistry()
register = registry.register
