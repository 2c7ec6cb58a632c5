# Stay credential engine: database models
# Import all models here for SQLAlchemy discovery

from app.models.reservation import Property, GuestProfile, Reservation   # noqa
from app.models.co_occupancy_grant import CoOccupancyGrant               # noqa
from app.models.credential import Credential                             # noqa
from app.models.door_transaction import DoorTransaction                  # noqa
from app.models.access_log import AccessLog                              # noqa
