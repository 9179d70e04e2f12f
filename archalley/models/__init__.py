# Models package: import all models here so Alembic can discover them.

from archalley.models.user import User  # noqa: F401
from archalley.models.competition import (  # noqa: F401
    Competition,
    CompetitionRegistrationType,
)
from archalley.models.cart import RegistrationCart, RegistrationCartItem  # noqa: F401
from archalley.models.payment import (  # noqa: F401
    CompetitionPayment,
    PaymentMaterialization,
)
from archalley.models.registration import CompetitionRegistration  # noqa: F401
from archalley.models.audit import AuditEvent  # noqa: F401
