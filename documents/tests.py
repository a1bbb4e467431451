import os
import shutil
import tempfile

from auditlog.models import LogEntry
from django.contrib.auth import get_user_model
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from uploads.placeholders import make_id_path
from uploads.services import save_with_uploads
from .models import Document, Folder, Tag

User = get_user_model()


class DocumentAPITests(APITestCase):
    """Test suite for the Folder and Document APIs."""

    def setUp(self):
        """Set up a user, a folder and a temporary media root."""
        self.media_root = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.media_root, ignore_errors=True)
        media_settings = override_settings(MEDIA_ROOT=self.media_root, MEDIA_URL='/media/')
        media_settings.enable()
        self.addCleanup(media_settings.disable)

        self.user = User.objects.create_user(username='editor', password='editorpass')
        self.client.force_authenticate(user=self.user)

        self.folder = Folder.objects.create(name='Contracts')

    def test_create_document_with_file(self):
        """Ensure an uploaded file is stored under the folder and sharded id."""
        url = reverse('document-list')
        data = {
            'title': 'Lease',
            'folder': self.folder.pk,
            'file': SimpleUploadedFile('Lease Agreement.PDF', b'%PDF-1.7'),
        }
        response = self.client.post(url, data, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        document = Document.objects.get(pk=response.data['id'])
        id_path = make_id_path(document.pk)
        self.assertEqual(response.data['file_name'], 'Lease Agreement.pdf')
        self.assertEqual(
            response.data['file_url'],
            f"/media/folders/{self.folder.pk}/{id_path}/Lease Agreement.pdf",
        )
        self.assertIsNone(response.data['preview_url'])
        self.assertNotIn('file', response.data)

        path = os.path.join(self.media_root, 'folders', str(self.folder.pk), id_path, 'Lease Agreement.pdf')
        self.assertEqual(document.get_uploaded_file_path('file'), path)
        with open(path, 'rb') as f:
            self.assertEqual(f.read(), b'%PDF-1.7')

    def test_create_document_without_file(self):
        url = reverse('document-list')
        response = self.client.post(url, {'title': 'Draft'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['file_name'], '')
        self.assertIsNone(response.data['file_url'])

    def test_replace_preview_removes_old_file(self):
        """Ensure uploading a new preview deletes the file of the previous one."""
        document = Document(title='Invoice', folder=self.folder)
        save_with_uploads(document, {'preview': SimpleUploadedFile('invoice.png', b'png')})
        old_path = document.get_uploaded_file_path('preview')
        self.assertTrue(os.path.exists(old_path))

        url = reverse('document-detail', kwargs={'pk': document.pk})
        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.patch(
                url, {'preview': SimpleUploadedFile('invoice.JPG', b'jpg')}, format='multipart'
            )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['preview_name'], 'invoice.jpg')
        self.assertEqual(response.data['preview_url'], f"/media/previews/{document.pk}.jpg")

        document.refresh_from_db()
        self.assertFalse(os.path.exists(old_path))
        self.assertTrue(os.path.exists(document.get_uploaded_file_path('preview')))

    def test_update_without_upload_keeps_file(self):
        document = Document(title='Memo', folder=self.folder)
        save_with_uploads(document, {'file': SimpleUploadedFile('memo.txt', b'memo')})
        path = document.get_uploaded_file_path('file')

        url = reverse('document-detail', kwargs={'pk': document.pk})
        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.patch(url, {'title': 'Memo v2'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['file_name'], 'memo.txt')
        self.assertTrue(os.path.exists(path))

    def test_delete_document_removes_files(self):
        document = Document(title='Receipt', folder=self.folder)
        save_with_uploads(document, {
            'file': SimpleUploadedFile('receipt.pdf', b'pdf'),
            'preview': SimpleUploadedFile('receipt.png', b'png'),
        })
        paths = [document.get_uploaded_file_path('file'), document.get_uploaded_file_path('preview')]

        url = reverse('document-detail', kwargs={'pk': document.pk})
        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.delete(url)
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Document.objects.filter(pk=document.pk).exists())
        for path in paths:
            self.assertFalse(os.path.exists(path))

    def test_move_document_to_another_folder(self):
        """Ensure changing the folder moves the stored file under the new folder."""
        document = Document(title='Lease', folder=self.folder)
        save_with_uploads(document, {'file': SimpleUploadedFile('lease.pdf', b'pdf')})
        old_path = document.get_uploaded_file_path('file')
        archive = Folder.objects.create(name='Archive')

        url = reverse('document-detail', kwargs={'pk': document.pk})
        response = self.client.patch(url, {'folder': archive.pk}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            response.data['file_url'],
            f"/media/folders/{archive.pk}/{make_id_path(document.pk)}/lease.pdf",
        )

        document.refresh_from_db()
        new_path = document.get_uploaded_file_path('file')
        self.assertFalse(os.path.exists(old_path))
        with open(new_path, 'rb') as f:
            self.assertEqual(f.read(), b'pdf')

        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.delete(url)
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(os.path.exists(new_path))

    def test_delete_document_without_files(self):
        document = Document.objects.create(title='Empty')
        url = reverse('document-detail', kwargs={'pk': document.pk})
        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.delete(url)
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

    def test_filter_documents_by_folder(self):
        Document.objects.create(title='In folder', folder=self.folder)
        Document.objects.create(title='Loose')

        url = f"{reverse('document-list')}?folder={self.folder.pk}"
        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([d['title'] for d in response.data], ['In folder'])

    def test_create_folder_with_cover(self):
        url = reverse('folder-list')
        data = {'name': 'Photos', 'cover': SimpleUploadedFile('Cover.PNG', b'png')}
        response = self.client.post(url, data, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        folder_id = response.data['id']
        self.assertEqual(response.data['cover_name'], 'Cover.png')
        self.assertEqual(response.data['cover_url'], f"/media/folder/{folder_id}/cover.png")
        self.assertTrue(os.path.exists(os.path.join(self.media_root, 'folder', str(folder_id), 'cover.png')))

    def test_audit_log_records_actor(self):
        """Ensure document changes made through the API are attributed to the caller."""
        url = reverse('document-list')
        data = {'title': 'Audited', 'file': SimpleUploadedFile('audit.txt', b'audit')}
        response = self.client.post(url, data, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        log_entries = LogEntry.objects.filter(
            content_type__model='document',
            object_id=response.data['id'],
        )
        self.assertTrue(log_entries.exists())
        self.assertEqual(log_entries.latest('timestamp').actor, self.user)

    def test_requires_authentication(self):
        self.client.force_authenticate(user=None)
        response = self.client.get(reverse('document-list'))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_create_document_with_file_and_tags(self):
        """Ensure many-to-many values are set alongside an upload."""
        legal = Tag.objects.create(name='legal')
        signed = Tag.objects.create(name='signed')

        url = reverse('document-list')
        data = {
            'title': 'Contract',
            'tags': [legal.pk, signed.pk],
            'file': SimpleUploadedFile('contract.pdf', b'pdf'),
        }
        response = self.client.post(url, data, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(sorted(response.data['tags']), sorted([legal.pk, signed.pk]))

        document = Document.objects.get(pk=response.data['id'])
        self.assertEqual(list(document.tags.values_list('name', flat=True)), ['legal', 'signed'])
        self.assertTrue(os.path.exists(document.get_uploaded_file_path('file')))

    def test_update_document_tags(self):
        document = Document.objects.create(title='Policy')
        document.tags.add(Tag.objects.create(name='draft'))
        final = Tag.objects.create(name='final')

        url = reverse('document-detail', kwargs={'pk': document.pk})
        response = self.client.patch(url, {'tags': [final.pk]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(list(document.tags.values_list('name', flat=True)), ['final'])
