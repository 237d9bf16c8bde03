from app.core.security.authorization import Permission

PURGE = Permission(
    id="storage.purge",
    name="Storage - Purge",
    description="Allow the deletion of all stale files from the storage backend",
)
DELETE = Permission(
    id="storage.delete",
    name="Storage - Delete",
    description="Allow the deletion of a file or folder in storage",
)
UPDATE = Permission(
    id="storage.update",
    name="Storage - Update",
    description="Allow the update of the metadata of a file or folder in storage",
)

# Folders
FOLDER_READ = Permission(
    id="storage.folder.get",
    name="Storage - Read Folder",
    description="Allow access to the metadata and children of a folder in storage",
)
FOLDER_CREATE = Permission(
    id="storage.folder.create",
    name="Storage - Create Folder",
    description="Allow the creation of a folder in storage",
)

# Files
FILE_UPLOAD = Permission(
    id="storage.file.upload",
    name="Storage - Upload",
    description="Allow the upload of a file to storage",
)
FILE_DOWNLOAD = Permission(
    id="storage.file.download",
    name="Storage - Download",
    description="Allow the download of a file from storage",
)

ALL_PERMISSIONS = [PURGE, DELETE, UPDATE, FOLDER_READ, FOLDER_CREATE, FILE_UPLOAD, FILE_DOWNLOAD]
