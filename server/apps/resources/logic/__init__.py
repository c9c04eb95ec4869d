"""Business logic layer for resources app.

This package contains all business logic for resource operations:
- Folder listing, creation and deletion
- Move and rename of files and folders
- Search and batch upload
- File and zip downloads

Every operation takes the tenant ID explicitly; there is no shared
notion of a current user.
"""
