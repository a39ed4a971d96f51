"""Contact identity resolution."""

from omnidesk.services.contacts.resolver import ContactHints, ContactResolver

__all__ = ["ContactHints", "ContactResolver"]
