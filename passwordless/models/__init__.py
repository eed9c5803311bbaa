from .identity import Base, Identity  # noqa: F401  → registers the table with the metadata
from .verification_code import VerificationCode  # noqa: F401
from .magic_link import MagicLink  # noqa: F401
from .login_attempt import LoginAttempt  # noqa: F401
