from rest_framework import serializers

from uploads.serializers import FileUploadSerializerMixin
from .models import Document, Folder


class UploadUrlField(serializers.Field):
    """Read-only public URL of an upload attribute, or None when it is empty."""

    def __init__(self, attribute, **kwargs):
        self.attribute = attribute
        kwargs['source'] = '*'
        kwargs['read_only'] = True
        super().__init__(**kwargs)

    def to_representation(self, instance):
        if not getattr(instance, self.attribute):
            return None
        return instance.get_uploaded_file_url(self.attribute)


class FolderSerializer(FileUploadSerializerMixin, serializers.ModelSerializer):
    cover = serializers.FileField(required=False, write_only=True)
    cover_name = serializers.CharField(source='cover', read_only=True)
    cover_url = UploadUrlField('cover')

    class Meta:
        model = Folder
        fields = ['id', 'name', 'cover', 'cover_name', 'cover_url', 'created_at']
        read_only_fields = ['id', 'created_at']


class DocumentSerializer(FileUploadSerializerMixin, serializers.ModelSerializer):
    """
    Serializer for the Document model.
    `file` and `preview` accept uploads; the stored names and URLs are returned instead.
    """
    file = serializers.FileField(required=False, write_only=True)
    file_name = serializers.CharField(source='file', read_only=True)
    file_url = UploadUrlField('file')
    preview = serializers.FileField(required=False, write_only=True)
    preview_name = serializers.CharField(source='preview', read_only=True)
    preview_url = UploadUrlField('preview')

    class Meta:
        model = Document
        fields = [
            'id', 'folder', 'title', 'tags',
            'file', 'file_name', 'file_url',
            'preview', 'preview_name', 'preview_url',
            'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']
