from .auth_api import AuthAPI
from .message_api import MessageAPI
from .conversation_api import ConversationAPI
from .user_api import UserAPI
