from django.core.files.uploadedfile import UploadedFile
from rest_framework.utils import model_meta

from .registry import registry
from .services import save_with_uploads


class FileUploadSerializerMixin:
    """
    A mixin for ModelSerializers whose model has registered uploads.

    Declare each upload attribute as a ``serializers.FileField``; uploaded
    files are staged on the instance instead of being assigned as field data,
    and the instance is saved through ``save_with_uploads``. Many-to-many
    values are set after the save, as ModelSerializer does.
    """

    def pop_uploads(self, validated_data):
        uploads = {}
        for config in registry.get_configs(self.Meta.model):
            if isinstance(validated_data.get(config.attribute), UploadedFile):
                uploads[config.attribute] = validated_data.pop(config.attribute)
        return uploads

    def pop_many_to_many(self, validated_data):
        info = model_meta.get_field_info(self.Meta.model)
        many_to_many = {}
        for field_name, relation_info in info.relations.items():
            if relation_info.to_many and field_name in validated_data:
                many_to_many[field_name] = validated_data.pop(field_name)
        return many_to_many

    def create(self, validated_data):
        uploads = self.pop_uploads(validated_data)
        many_to_many = self.pop_many_to_many(validated_data)

        # Create the instance in memory, the serializer has already validated it
        instance = self.Meta.model(**validated_data)
        save_with_uploads(instance, uploads, validate=False)

        for field_name, value in many_to_many.items():
            getattr(instance, field_name).set(value)
        return instance

    def update(self, instance, validated_data):
        uploads = self.pop_uploads(validated_data)
        many_to_many = self.pop_many_to_many(validated_data)

        for attr, value in validated_data.items():
            setattr(instance, attr, value)

        save_with_uploads(instance, uploads, validate=False)

        for field_name, value in many_to_many.items():
            getattr(instance, field_name).set(value)
        return instance
