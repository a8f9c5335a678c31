from ._authinfo import *
from ._errors import *
from ._options import *
from ._request import *
from ._profile import *
from ._casclient import *
from ._utils import build_service_url

from .cas import *
