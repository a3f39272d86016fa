from app.auth.models import RefreshToken, Team, User
from app.crm.models import Customer, Lead
from app.models.activity import Activity, ActivityType, ResourceType

__all__ = [
	"Activity",
	"ActivityType",
	"Customer",
	"Lead",
	"RefreshToken",
	"ResourceType",
	"Team",
	"User",
]
