from datetime import datetime

from beanie import Document, Indexed


class FolderClaim(Document):
    """Who may write under music/{segment}/. The first grant into a folder claims it."""
    prefix: Indexed(str, unique=True)
    owner_id: Indexed(str)
    claimed_at: datetime

    class Settings:
        name = "folder_claims"
