from .crud_user import user
from .crud_review import review
from . import crud_notification
from . import crud_message
from . import crud_audit
