from models.user import User
from models.otp_code import OtpCode
from models.magic_link import MagicLink
from models.session import UserSession
from models.realtor_client import RealtorClient, CLIENT_STATUSES

__all__ = ["User", "OtpCode", "MagicLink", "UserSession", "RealtorClient", "CLIENT_STATUSES"]
