from django.contrib import admin

from .models import Document, Folder, Tag


@admin.register(Folder)
class FolderAdmin(admin.ModelAdmin):
    list_display = ('name', 'cover', 'created_at')
    search_fields = ('name',)
    readonly_fields = ('cover', 'cover_url', 'created_at')

    @admin.display(description='Cover URL')
    def cover_url(self, obj):
        return obj.get_uploaded_file_url('cover') if obj.cover else '-'


@admin.register(Tag)
class TagAdmin(admin.ModelAdmin):
    search_fields = ('name',)


@admin.register(Document)
class DocumentAdmin(admin.ModelAdmin):
    """
    Admin view for the Document model.
    Uploads go through the API; stored names and URLs are shown read-only.
    """
    list_display = ('title', 'folder', 'file', 'preview', 'updated_at')
    list_filter = ('folder', 'tags', 'created_at')
    search_fields = ('title', 'file')
    readonly_fields = ('file', 'file_url', 'preview', 'preview_url', 'created_at', 'updated_at')

    @admin.display(description='File URL')
    def file_url(self, obj):
        return obj.get_uploaded_file_url('file') if obj.file else '-'

    @admin.display(description='Preview URL')
    def preview_url(self, obj):
        return obj.get_uploaded_file_url('preview') if obj.preview else '-'
