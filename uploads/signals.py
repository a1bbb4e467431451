from django.dispatch import Signal

# Sent after an uploaded file has been written to disk.
# Arguments: sender (model class), instance, attribute, path.
file_saved = Signal()
