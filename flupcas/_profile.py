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

from collections import namedtuple
from collections.abc import Mapping


__all__ = ['Name', 'Profile', 'map_profile']


PROVIDER = 'CAS'

# Profile field -> Name attribute
_NAME_FIELDS = (('familyName', 'family_name'),
                ('givenName', 'given_name'),
                ('middleName', 'middle_name'))


Name = namedtuple('Name', 'family_name given_name middle_name')


class Profile(object):
    """
    Normalized identity built from a CAS validation response.

    Attributes the property map didn't claim end up in extra, untouched.
    """

    def __init__(self, id, display_name, name=None, emails=None, extra=None,
                 pgtiou=None, provider=PROVIDER):
        self.provider = provider
        self.id = id
        self.display_name = display_name
        self.name = name or Name(None, None, None)
        self.emails = list(emails or [])
        self.extra = dict(extra or {})
        self.pgtiou = pgtiou

    def __eq__(self, other):
        if not isinstance(other, Profile):
            return NotImplemented
        return self.as_dict() == other.as_dict() and \
            self.pgtiou == other.pgtiou

    def __ne__(self, other):
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    def __repr__(self):
        return 'Profile(id=%r, display_name=%r)' % (self.id, self.display_name)

    def as_dict(self):
        """Portable contacts style rendering, extra attributes merged in."""
        d = {
            'provider': self.provider,
            'id': self.id,
            'displayName': self.display_name,
            'name': {
                'familyName': self.name.family_name,
                'givenName': self.name.given_name,
                'middleName': self.name.middle_name,
            },
            'emails': [dict(e) for e in self.emails],
        }
        for key, value in self.extra.items():
            d[key] = value
        return d


def _is_sequence(value):
    return isinstance(value, (list, tuple))


def _first(value):
    if _is_sequence(value):
        return value[0] if value else None
    return value


def _emails(value):
    if value is None:
        return []
    if isinstance(value, Mapping):
        return [dict(value)]
    if _is_sequence(value):
        if value and isinstance(value[0], Mapping):
            return [dict(e) for e in value]
        return [{'value': v, 'type': 'default'} for v in value]
    return [{'value': value, 'type': 'default'}]


def map_profile(username, attributes, property_map=None, pgtiou=None):
    """
    Builds a Profile out of CAS extended attributes.

    property_map maps profile field names (id, displayName, givenName,
    familyName, middleName, emails) to CAS attribute names. Fields it
    doesn't mention are looked up under their own name.

    Name fields take the first value of a multi-valued attribute. Emails
    become {'value': ..., 'type': 'default'} records unless the server
    already sent records. id and displayName fall back to the username.
    Whatever wasn't consumed is copied to Profile.extra as-is.

    attributes is never modified.
    """
    attributes = attributes or {}
    property_map = property_map or {}

    def source(field):
        return property_map.get(field) or field

    consumed = set()

    name_values = {}
    for field, attr in _NAME_FIELDS:
        key = source(field)
        name_values[attr] = _first(attributes.get(key))
        consumed.add(key)

    key = source('emails')
    emails = _emails(attributes.get(key))
    consumed.add(key)

    values = {'id': username, 'displayName': username}
    for field in ('id', 'displayName'):
        key = source(field)
        value = attributes.get(key)
        if _is_sequence(value):
            if value:
                values[field] = value[0]
        elif value:
            values[field] = value
        consumed.add(key)

    extra = dict((k, v) for k, v in attributes.items() if k not in consumed)

    return Profile(values['id'], values['displayName'],
                   name=Name(**name_values),
                   emails=emails,
                   extra=extra,
                   pgtiou=pgtiou)
