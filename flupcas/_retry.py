# Copyright 2018 Allan Saddi <allan@saddi.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import math
import time

from urllib.parse import urlsplit, urlunsplit

from ._request import RETRY_PARAM
from ._utils import build_service_url, split_query, segment_name


__all__ = ['current_window_token', 'has_retried', 'retry_url']


# At most one automatic retry per minute window. Derived from the clock
# and the URL only, nothing is stored.

def current_window_token(now=None):
    """Wall-clock minute, rounded to the nearest minute."""
    if now is None:
        now = time.time()
    return int(math.floor(now / 60.0 + 0.5))


def has_retried(request, token):
    return request.retry_token == str(token)


def retry_url(request, token):
    """
    The original request URL with any earlier retry marker dropped and the
    ticket parameter replaced (in place) by a fresh retry marker.

    Scheme, host and path are the public ones, as in the service URL. A
    request with no known host gets a relative URL.
    """
    public = urlsplit(build_service_url(request))
    parts = urlsplit(request.url)
    marker = '%s=%d' % (RETRY_PARAM, token)

    segments = []
    replaced = False
    for seg in split_query(parts.query):
        name = segment_name(seg)
        if name == RETRY_PARAM:
            continue
        if name == 'ticket':
            if not replaced:
                segments.append(marker)
                replaced = True
            continue
        segments.append(seg)
    if not replaced:
        segments.append(marker)

    query = '&'.join(segments)
    if not public.netloc:
        return urlunsplit(('', '', public.path, query, ''))
    return urlunsplit((public.scheme, public.netloc, public.path, query, ''))
