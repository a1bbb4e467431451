import logging

from auditlog.context import set_actor
from rest_framework import viewsets
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser

from .models import Document, Folder
from .serializers import DocumentSerializer, FolderSerializer

# Get the logger configured in settings.py
logger = logging.getLogger('audit_debug')


class AuditActorMixin:
    """
    Sets request.user as the auditlog actor around create, update and destroy,
    so that file uploads and removals are attributed to the caller.
    """
    def perform_create(self, serializer):
        with set_actor(self.request.user):
            serializer.save()

    def perform_update(self, serializer):
        with set_actor(self.request.user):
            serializer.save()

    def perform_destroy(self, instance):
        logger.debug(f"Deleting {instance._meta.label} {instance.pk} as {self.request.user}")
        with set_actor(self.request.user):
            super().perform_destroy(instance)


class FolderViewSet(AuditActorMixin, viewsets.ModelViewSet):
    """API endpoint for managing folders and their cover images."""
    queryset = Folder.objects.all()
    serializer_class = FolderSerializer
    parser_classes = [MultiPartParser, FormParser, JSONParser]


class DocumentViewSet(AuditActorMixin, viewsets.ModelViewSet):
    """API endpoint for managing documents and their uploaded files."""
    queryset = Document.objects.select_related('folder')
    serializer_class = DocumentSerializer
    parser_classes = [MultiPartParser, FormParser, JSONParser]

    def get_queryset(self):
        """
        Optionally restricts the returned documents to a folder,
        by filtering against the `folder` query parameter.
        """
        queryset = super().get_queryset()
        folder_id = self.request.query_params.get('folder')
        if folder_id:
            queryset = queryset.filter(folder_id=folder_id)
        return queryset
