"""Campaign broadcasts."""

from omnidesk.services.campaigns.dispatcher import CampaignDispatcher, render_template
from omnidesk.services.campaigns.registry import CampaignRunRegistry

__all__ = ["CampaignDispatcher", "CampaignRunRegistry", "render_template"]
