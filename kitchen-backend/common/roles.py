from django.db import models

class TenantRole(models.TextChoices):
    OWNER    = "owner",    "Owner"
    MANAGER  = "manager",  "Manager"
    CHEF     = "chef",     "Chef"
    RECEIVER = "receiver", "Receiver"
    STAFF    = "staff",    "Staff"
