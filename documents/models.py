from django.db import models
from auditlog.registry import auditlog

from uploads.mixins import FileUploadMixin
from uploads.registry import register


class Folder(FileUploadMixin, models.Model):
    """Groups documents. Its cover image is stored per folder id."""
    name = models.CharField(max_length=255, help_text="The name of the folder.")
    cover = models.CharField(max_length=255, blank=True, help_text="Stored file name of the cover image.")
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name

    class Meta:
        ordering = ['name']


class Tag(models.Model):
    name = models.CharField(max_length=50, unique=True)

    def __str__(self):
        return self.name

    class Meta:
        ordering = ['name']


class Document(FileUploadMixin, models.Model):
    """
    A file kept on disk under a sharded directory of its folder, with an
    optional preview image.
    """
    folder = models.ForeignKey(Folder, null=True, blank=True, on_delete=models.CASCADE, related_name='documents')
    title = models.CharField(max_length=255)
    file = models.CharField(max_length=255, blank=True, help_text="Stored file name, e.g. 'report.pdf'.")
    preview = models.CharField(max_length=255, blank=True, help_text="Stored file name of the preview image.")
    tags = models.ManyToManyField(Tag, blank=True, related_name='documents')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.title

    class Meta:
        ordering = ['-updated_at']


register(
    Folder,
    attribute='cover',
    file_path='[[web_root]]/[[model]]/[[id]]/[[attribute]].[[extension]]',
    file_url='[[base_url]]/[[model]]/[[id]]/[[attribute]].[[extension]]',
)
register(
    Document,
    attribute='file',
    file_path='[[web_root]]/folders/[[parent_id]]/[[id_path]]/[[basename]]',
    file_url='[[base_url]]/folders/[[parent_id]]/[[id_path]]/[[basename]]',
    parent_relation_attribute='folder_id',
)
register(
    Document,
    attribute='preview',
    file_path='[[web_root]]/previews/[[id]].[[extension]]',
    file_url='[[base_url]]/previews/[[id]].[[extension]]',
)

auditlog.register(Folder)
auditlog.register(Document)
auditlog.register(Tag)
