"""Request bodies for the cron job routes."""

from pydantic import BaseModel, StrictBool


class CronJobEnabled(BaseModel):
    enabled: StrictBool
