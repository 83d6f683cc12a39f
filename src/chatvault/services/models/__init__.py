from .api_models import *
from .message_api_models import *
from .conversation_api_models import *
from .user_api_models import *
