import os
import shutil
import tempfile

from django.core.exceptions import ImproperlyConfigured
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils.datastructures import MultiValueDict

from documents.models import Document, Folder
from .exceptions import FileSaveError, InvalidAliasError, UploadNotConfigured
from .lifecycle import OPERATION_ATTR, PendingUpload
from .placeholders import Placeholder, ResolutionContext, make_id_path, resolve
from .registry import UploadConfig, UploadRegistry, registry
from .services import capture_uploads, get_uploaded_file_path, get_uploaded_file_url, save_with_uploads
from .signals import file_saved


class IdPathTests(SimpleTestCase):
    """Tests for sharding primary keys into directory paths."""

    def test_short_key_is_right_padded_to_ten_levels(self):
        self.assertEqual(make_id_path(42), '4/2/0/0/0/0/0/0/0/0')

    def test_every_key_up_to_ten_digits_gives_ten_single_character_segments(self):
        for pk in [1, 7, 99, 12345, 9876543210]:
            segments = make_id_path(pk).split('/')
            self.assertEqual(len(segments), 10)
            self.assertTrue(all(len(segment) == 1 for segment in segments))
            self.assertEqual(''.join(segments), str(pk).ljust(10, '0'))

    def test_longer_key_is_not_truncated(self):
        self.assertEqual(make_id_path(123456789012), '1/2/3/4/5/6/7/8/9/0/1/2')

    def test_missing_key_gives_zero_path(self):
        self.assertEqual(make_id_path(None), '0/0/0/0/0/0/0/0/0/0')


class ResolveTests(SimpleTestCase):
    """Tests for placeholder substitution in path and URL templates."""

    def make_context(self, **kwargs):
        defaults = {
            'app_root': '/srv/app',
            'web_root': '/var/www',
            'base_url': '/media',
            'model_name': 'Document',
            'attribute': 'file',
            'pk': 7,
            'value': 'photo.JPG',
        }
        defaults.update(kwargs)
        return ResolutionContext(**defaults)

    def test_web_root_id_and_lowercased_extension(self):
        path = resolve('[[web_root]]/uploads/[[id]].[[extension]]', self.make_context())
        self.assertEqual(path, '/var/www/uploads/7.jpg')

    def test_id_path_and_basename(self):
        ctx = self.make_context(pk=42, value='report.pdf')
        path = resolve('[[web_root]]/uploads/[[id_path]]/[[basename]]', ctx)
        self.assertEqual(path, '/var/www/uploads/4/2/0/0/0/0/0/0/0/0/report.pdf')

    def test_roots_and_base_url(self):
        ctx = self.make_context()
        self.assertEqual(resolve('[[app_root]]|[[base_url]]', ctx), '/srv/app|/media')

    def test_model_and_attribute_are_lcfirst(self):
        ctx = self.make_context(model_name='DocumentVersion', attribute='CoverImage')
        self.assertEqual(resolve('[[model]]/[[attribute]]', ctx), 'documentVersion/coverImage')

    def test_filename_keeps_inner_dots_and_case(self):
        ctx = self.make_context(value='Annual.Report.PDF')
        self.assertEqual(resolve('[[filename]]', ctx), 'Annual.Report')
        self.assertEqual(resolve('[[basename]]', ctx), 'Annual.Report.pdf')

    def test_name_without_extension(self):
        ctx = self.make_context(value='README')
        self.assertEqual(resolve('[[id]].[[extension]]', ctx), '7.')
        self.assertEqual(resolve('[[basename]]', ctx), 'README')

    def test_empty_value_resolves_file_parts_to_empty_strings(self):
        ctx = self.make_context(value='')
        self.assertEqual(resolve('[[filename]]|[[extension]]|[[basename]]', ctx), '||')

    def test_uploaded_file_value_uses_its_name(self):
        ctx = self.make_context(value=SimpleUploadedFile('Scan.PNG', b'data'))
        self.assertEqual(resolve('[[basename]]', ctx), 'Scan.png')

    def test_unknown_placeholder_is_left_untouched(self):
        path = resolve('[[web_root]]/[[unknown]]/[[id]]', self.make_context())
        self.assertEqual(path, '/var/www/[[unknown]]/7')

    def test_parent_id_without_parent_relation_is_left_untouched(self):
        self.assertEqual(resolve('[[parent_id]]/[[id]]', self.make_context()), '[[parent_id]]/7')

    def test_parent_id_with_parent_relation(self):
        self.assertEqual(resolve('[[parent_id]]/[[id]]', self.make_context(parent_id='3')), '3/7')
        self.assertEqual(resolve('[[parent_id]]/[[id]]', self.make_context(parent_id='')), '/7')

    def test_missing_primary_key(self):
        self.assertEqual(resolve('[[id]].[[extension]]', self.make_context(pk=None)), '.jpg')

    def test_substituted_values_are_not_rescanned(self):
        ctx = self.make_context(web_root='/srv/[[id]]')
        self.assertEqual(resolve('[[web_root]]/[[id]]', ctx), '/srv/[[id]]/7')

    def test_resolution_is_idempotent(self):
        ctx = self.make_context(pk=42, parent_id='5')
        template = '[[web_root]]/[[parent_id]]/[[id_path]]/[[basename]]'
        self.assertEqual(resolve(template, ctx), resolve(template, ctx))

    def test_leading_alias_is_expanded(self):
        ctx = self.make_context(aliases={'@webroot': '/var/www'})
        self.assertEqual(resolve('@webroot/uploads/[[id]]', ctx), '/var/www/uploads/7')

    def test_unknown_alias_raises(self):
        with self.assertRaises(InvalidAliasError):
            resolve('@nowhere/[[id]]', self.make_context())

    def test_alias_only_applies_at_the_start(self):
        self.assertEqual(resolve('/mail/@webroot/[[id]]', self.make_context()), '/mail/@webroot/7')

    def test_placeholder_token(self):
        self.assertEqual(Placeholder.ID_PATH.token, '[[id_path]]')


class PendingUploadTests(SimpleTestCase):

    def test_stored_name_lowercases_extension(self):
        pending = PendingUpload(SimpleUploadedFile('photo.JPG', b'data'))
        self.assertEqual(pending.filename, 'photo')
        self.assertEqual(pending.extension, 'jpg')
        self.assertEqual(pending.stored_name, 'photo.jpg')


class RegistryTests(SimpleTestCase):
    """Tests for registering upload attributes and looking them up."""

    def test_configs_for_registered_model(self):
        attributes = [config.attribute for config in registry.get_configs(Document)]
        self.assertEqual(attributes, ['file', 'preview'])

    def test_unregistered_attribute_raises(self):
        with self.assertRaises(UploadNotConfigured) as cm:
            registry.get_config(Document, 'title')
        self.assertIsInstance(cm.exception, ImproperlyConfigured)
        self.assertIn("'title'", str(cm.exception))

    def test_register_unknown_field_raises(self):
        with self.assertRaises(ImproperlyConfigured):
            UploadRegistry().register(Folder, attribute='missing')

    def test_register_same_attribute_twice_raises(self):
        other = UploadRegistry()
        config = other.register(Folder, attribute='cover')
        self.addCleanup(other.unregister, Folder)
        self.assertEqual(config.file_path, '[[web_root]]/uploads/[[id]].[[extension]]')
        self.assertEqual(config.file_url, '/uploads/[[id]].[[extension]]')
        with self.assertRaises(ImproperlyConfigured):
            other.register(Folder, attribute='cover')

    def test_unregister(self):
        other = UploadRegistry()
        other.register(Folder, attribute='cover')
        other.unregister(Folder)
        self.assertFalse(other.contains(Folder))
        self.assertEqual(other.get_configs(Folder), [])


class MediaRootMixin:
    """Points MEDIA_ROOT at a fresh temporary directory for each test."""

    def setUp(self):
        super().setUp()
        self.media_root = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.media_root, ignore_errors=True)
        media_settings = override_settings(MEDIA_ROOT=self.media_root, MEDIA_URL='/media/')
        media_settings.enable()
        self.addCleanup(media_settings.disable)

    def read(self, path):
        with open(path, 'rb') as f:
            return f.read()


class LifecycleTests(MediaRootMixin, TestCase):
    """Tests for writing, replacing and removing files around model saves and deletes."""

    def setUp(self):
        super().setUp()
        self.folder = Folder.objects.create(name='Reports')

    def create_document(self, **files):
        document = Document(folder=self.folder, title='Quarterly report')
        save_with_uploads(document, files)
        return document

    def test_create_writes_file_to_resolved_path(self):
        document = self.create_document(file=SimpleUploadedFile('Q1 Report.PDF', b'%PDF-1.4'))
        document.refresh_from_db()

        self.assertEqual(document.file, 'Q1 Report.pdf')
        path = document.get_uploaded_file_path('file')
        expected = f"{self.media_root}/folders/{self.folder.pk}/{make_id_path(document.pk)}/Q1 Report.pdf"
        self.assertEqual(path, expected)
        self.assertEqual(self.read(path), b'%PDF-1.4')

    def test_model_and_attribute_placeholders(self):
        folder = Folder(name='Photos')
        save_with_uploads(folder, {'cover': SimpleUploadedFile('Beach.PNG', b'png')})
        path = folder.get_uploaded_file_path('cover')
        self.assertEqual(path, f"{self.media_root}/folder/{folder.pk}/cover.png")
        self.assertTrue(os.path.exists(path))

    def test_url_accessor(self):
        document = self.create_document(preview=SimpleUploadedFile('thumb.PNG', b'png'))
        self.assertEqual(document.get_uploaded_file_url('preview'), f"/media/previews/{document.pk}.png")

    def test_accessor_for_unregistered_attribute_raises(self):
        document = self.create_document()
        with self.assertRaises(UploadNotConfigured):
            document.get_uploaded_file_path('title')

    def test_replacing_upload_removes_old_file(self):
        document = self.create_document(preview=SimpleUploadedFile('thumb.png', b'old'))
        old_path = document.get_uploaded_file_path('preview')

        document = Document.objects.get(pk=document.pk)
        with self.captureOnCommitCallbacks(execute=True):
            save_with_uploads(document, {'preview': SimpleUploadedFile('thumb.jpg', b'new')})

        new_path = document.get_uploaded_file_path('preview')
        self.assertNotEqual(old_path, new_path)
        self.assertFalse(os.path.exists(old_path))
        self.assertEqual(self.read(new_path), b'new')

    def test_replacing_upload_at_same_path_keeps_new_file(self):
        document = self.create_document(preview=SimpleUploadedFile('first.png', b'old'))
        path = document.get_uploaded_file_path('preview')

        document = Document.objects.get(pk=document.pk)
        with self.captureOnCommitCallbacks(execute=True):
            save_with_uploads(document, {'preview': SimpleUploadedFile('second.png', b'new')})

        self.assertEqual(document.get_uploaded_file_path('preview'), path)
        self.assertEqual(self.read(path), b'new')

    def test_replacing_one_attribute_leaves_the_other(self):
        document = self.create_document(
            file=SimpleUploadedFile('report.pdf', b'pdf'),
            preview=SimpleUploadedFile('thumb.png', b'png'),
        )
        file_path = document.get_uploaded_file_path('file')

        with self.captureOnCommitCallbacks(execute=True):
            save_with_uploads(document, {'preview': SimpleUploadedFile('thumb.gif', b'gif')})

        self.assertEqual(self.read(file_path), b'pdf')

    def test_pending_upload_is_consumed_by_save(self):
        document = self.create_document(preview=SimpleUploadedFile('thumb.png', b'png'))
        self.assertNotIn(OPERATION_ATTR, document.__dict__)

        path = document.get_uploaded_file_path('preview')
        with open(path, 'wb') as f:
            f.write(b'edited')
        document.title = 'Renamed'
        document.save()

        self.assertEqual(self.read(path), b'edited')

    def test_direct_assignment_is_staged_on_save(self):
        document = Document(title='Direct')
        document.preview = SimpleUploadedFile('Direct.GIF', b'gif')
        document.save()

        self.assertEqual(document.preview, 'Direct.gif')
        self.assertEqual(self.read(document.get_uploaded_file_path('preview')), b'gif')

    def test_capture_from_request_files(self):
        document = Document(title='Captured')
        upload = SimpleUploadedFile('notes.txt', b'notes')
        staged = capture_uploads(document, MultiValueDict({'file': [upload]}))

        self.assertEqual(staged, ['file'])
        self.assertIs(document.file, upload)

    def test_capture_ignores_values_that_are_not_files(self):
        document = Document(title='Plain')
        staged = capture_uploads(document, {'file': 'notes.txt'})

        self.assertEqual(staged, [])
        self.assertEqual(document.file, '')
        self.assertNotIn(OPERATION_ATTR, document.__dict__)

    def test_file_saved_signal(self):
        received = []

        def handler(sender, instance, attribute, path, **kwargs):
            received.append((sender, instance, attribute, path))

        file_saved.connect(handler, weak=False)
        self.addCleanup(file_saved.disconnect, handler)

        document = self.create_document(preview=SimpleUploadedFile('thumb.png', b'png'))

        self.assertEqual(received, [
            (Document, document, 'preview', document.get_uploaded_file_path('preview')),
        ])

    def test_write_failure_raises_and_rolls_back(self):
        blocker = os.path.join(self.media_root, 'blocker')
        with open(blocker, 'wb'):
            pass

        document = Document(title='Broken')
        with override_settings(MEDIA_ROOT=blocker):
            with self.assertRaises(FileSaveError) as cm:
                save_with_uploads(document, {'preview': SimpleUploadedFile('thumb.png', b'png')})

        self.assertTrue(cm.exception.path.startswith(blocker))
        self.assertFalse(Document.objects.filter(title='Broken').exists())
        self.assertNotIn(OPERATION_ATTR, document.__dict__)

    def test_delete_removes_file(self):
        document = self.create_document(file=SimpleUploadedFile('report.pdf', b'pdf'))
        path = document.get_uploaded_file_path('file')

        with self.captureOnCommitCallbacks(execute=True):
            document.delete()

        self.assertFalse(os.path.exists(path))

    def test_delete_without_upload_does_not_raise(self):
        document = self.create_document()

        with self.captureOnCommitCallbacks(execute=True):
            document.delete()

        self.assertFalse(Document.objects.exists())

    def test_delete_with_missing_file_does_not_raise(self):
        document = Document.objects.create(title='Ghost', preview='ghost.png')
        self.assertFalse(os.path.exists(get_uploaded_file_path(document, 'preview')))

        with self.captureOnCommitCallbacks(execute=True):
            document.delete()

        self.assertFalse(Document.objects.filter(title='Ghost').exists())

    def test_deleting_folder_removes_document_files(self):
        document = self.create_document(file=SimpleUploadedFile('report.pdf', b'pdf'))
        path = document.get_uploaded_file_path('file')

        with self.captureOnCommitCallbacks(execute=True):
            self.folder.delete()

        self.assertFalse(os.path.exists(path))

    def test_moving_document_to_another_folder_moves_file(self):
        document = self.create_document(file=SimpleUploadedFile('report.pdf', b'pdf'))
        old_path = document.get_uploaded_file_path('file')
        archive = Folder.objects.create(name='Archive')

        document = Document.objects.get(pk=document.pk)
        document.folder = archive
        with self.captureOnCommitCallbacks(execute=True):
            save_with_uploads(document)

        new_path = document.get_uploaded_file_path('file')
        self.assertEqual(new_path, f"{self.media_root}/folders/{archive.pk}/{make_id_path(document.pk)}/report.pdf")
        self.assertFalse(os.path.exists(old_path))
        self.assertEqual(self.read(new_path), b'pdf')
        self.assertNotIn(OPERATION_ATTR, document.__dict__)

        with self.captureOnCommitCallbacks(execute=True):
            document.delete()
        self.assertFalse(os.path.exists(new_path))

    def test_moving_document_with_missing_file_does_not_raise(self):
        document = Document.objects.create(folder=self.folder, title='Ghost', file='ghost.pdf')
        document.folder = Folder.objects.create(name='Archive')
        document.save()

        self.assertFalse(os.path.exists(document.get_uploaded_file_path('file')))

    def test_moving_document_without_file_changes_nothing_on_disk(self):
        document = self.create_document()
        document.folder = Folder.objects.create(name='Archive')
        document.save()

        self.assertNotIn(OPERATION_ATTR, document.__dict__)
        self.assertEqual(os.listdir(self.media_root), [])


class SettingsTests(SimpleTestCase):
    """Tests for the FILE_UPLOAD roots and aliases used when resolving registered uploads."""

    @override_settings(FILE_UPLOAD={
        'APP_ROOT': '/srv/app',
        'WEB_ROOT': '/data/www',
        'BASE_URL': 'https://cdn.example.com/',
    })
    def test_roots_override_media_settings(self):
        document = Document(pk=5, title='Scan', preview='scan.PNG')
        self.assertEqual(get_uploaded_file_path(document, 'preview'), '/data/www/previews/5.png')
        self.assertEqual(get_uploaded_file_url(document, 'preview'), 'https://cdn.example.com/previews/5.png')

    @override_settings(MEDIA_ROOT='/var/media', MEDIA_URL='/files/', FILE_UPLOAD={})
    def test_roots_default_to_media_settings(self):
        document = Document(pk=5, title='Scan', preview='scan.png')
        self.assertEqual(get_uploaded_file_path(document, 'preview'), '/var/media/previews/5.png')
        self.assertEqual(get_uploaded_file_url(document, 'preview'), '/files/previews/5.png')

    @override_settings(FILE_UPLOAD={
        'APP_ROOT': '/srv/app',
        'ALIASES': {'@archive': '/mnt/archive'},
    })
    def test_configured_and_built_in_aliases(self):
        document = Document(pk=5, title='Scan', preview='scan.png')
        archived = UploadConfig(Document, 'preview', file_path='@archive/[[model]]/[[id]].[[extension]]')
        private = UploadConfig(Document, 'preview', file_path='@app/private/[[basename]]')

        self.assertEqual(archived.resolve_path(document), '/mnt/archive/document/5.png')
        self.assertEqual(private.resolve_path(document), '/srv/app/private/scan.png')

    @override_settings(FILE_UPLOAD={})
    def test_unconfigured_alias_raises(self):
        document = Document(pk=5, title='Scan', preview='scan.png')
        config = UploadConfig(Document, 'preview', file_path='@archive/[[id]].[[extension]]')
        with self.assertRaises(InvalidAliasError):
            config.resolve_path(document)
