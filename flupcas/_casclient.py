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

import logging
import xml.dom.minidom
from collections import namedtuple
from xml.parsers.expat import ExpatError

from urllib.parse import urlencode

import requests

from ._errors import ValidationError, ProxyTicketError


__all__ = ['CASClient', 'ValidationSuccess']


CAS_NAMESPACE_URI = 'http://www.yale.edu/tp/cas'

DEFAULT_TIMEOUT = 10

log = logging.getLogger(__name__)


ValidationSuccess = namedtuple('ValidationSuccess', 'username attributes pgtiou')


def _text(node):
    return ''.join([child.data for child in node.childNodes
                    if child.nodeType in (child.TEXT_NODE,
                                          child.CDATA_SECTION_NODE)]).strip()


def _child_elements(node, local_name=None):
    return [child for child in node.childNodes
            if child.nodeType == child.ELEMENT_NODE and
            (local_name is None or child.localName == local_name)]


def _child_text(node, local_name):
    nodes = _child_elements(node, local_name)
    if nodes:
        return _text(nodes[0])
    return None


def _parse(text, error_class):
    try:
        return xml.dom.minidom.parseString(text)
    except ExpatError as e:
        raise error_class('Unparsable CAS response: %s' % e)


def parse_validation_response(text):
    """
    Parses a CAS 2.0/3.0 serviceValidate response. Returns a
    ValidationSuccess or raises ValidationError.

    Attributes repeated in the response become lists, single ones stay
    strings.
    """
    dom = _parse(text, ValidationError)
    try:
        nodes = dom.getElementsByTagNameNS(CAS_NAMESPACE_URI,
                                           'authenticationFailure')
        if nodes:
            failure = nodes[0]
            raise ValidationError(_text(failure) or 'CAS authentication failed',
                                  code=failure.getAttribute('code') or None)

        nodes = dom.getElementsByTagNameNS(CAS_NAMESPACE_URI,
                                           'authenticationSuccess')
        if not nodes:
            raise ValidationError('Unexpected CAS response')
        success = nodes[0]

        username = _child_text(success, 'user')
        if not username:
            raise ValidationError('CAS response did not name a user')

        attributes = {}
        for container in _child_elements(success, 'attributes'):
            for node in _child_elements(container):
                name, value = node.localName, _text(node)
                if name in attributes:
                    if not isinstance(attributes[name], list):
                        attributes[name] = [attributes[name]]
                    attributes[name].append(value)
                else:
                    attributes[name] = value

        pgtiou = _child_text(success, 'proxyGrantingTicket') or None
    finally:
        dom.unlink()

    return ValidationSuccess(username, attributes, pgtiou)


def parse_proxy_response(text):
    """Parses a CAS /proxy response, returning the proxy ticket."""
    dom = _parse(text, ProxyTicketError)
    try:
        nodes = dom.getElementsByTagNameNS(CAS_NAMESPACE_URI, 'proxyFailure')
        if nodes:
            raise ProxyTicketError(_text(nodes[0]) or 'CAS proxy request failed')

        nodes = dom.getElementsByTagNameNS(CAS_NAMESPACE_URI, 'proxySuccess')
        ticket = nodes and _child_text(nodes[0], 'proxyTicket')
        if not ticket:
            raise ProxyTicketError('Unexpected CAS proxy response')
    finally:
        dom.unlink()

    return ticket


class CASClient(object):
    """
    CAS 2.0 protocol client.

    cas_url - CAS server base URL, e.g. https://www.example.com/cas

    pgt_url - Optional. URL of the PGT callback server. When set, ticket
      validation asks CAS for a proxy-granting ticket.

    ssl_cert, ssl_key - Optional client certificate/key files.

    ssl_ca - Optional CA bundle used to verify the CAS and PGT servers.
    """
    def __init__(self, cas_url, pgt_url=None, ssl_cert=None, ssl_key=None,
                 ssl_ca=None, timeout=DEFAULT_TIMEOUT):
        self.cas_url = cas_url.rstrip('/')
        self.pgt_url = pgt_url
        self.timeout = timeout

        self._tls = {'verify': ssl_ca or True}
        if ssl_cert and ssl_key:
            self._tls['cert'] = (ssl_cert, ssl_key)
        elif ssl_cert:
            self._tls['cert'] = ssl_cert

    def login_url(self, service):
        return self.cas_url + '/login?' + urlencode({'service': service})

    def logout_url(self, return_url=None):
        url = self.cas_url + '/logout'
        if return_url:
            url += '?' + urlencode({'url': return_url})
        return url

    def _get(self, url, params, error_class):
        try:
            r = requests.get(url, params=params, timeout=self.timeout,
                             **self._tls)
            r.raise_for_status()
        except requests.RequestException as e:
            raise error_class('Request to %s failed: %s' % (url, e))
        return r.text

    def validate(self, ticket, service):
        """
        Validates a service ticket. Returns a ValidationSuccess, raises
        ValidationError for anything else (including network failures and
        timeouts).
        """
        params = {'service': service, 'ticket': ticket}
        if self.pgt_url:
            params['pgtUrl'] = self.pgt_url

        log.debug('Validating ticket %s for %s', ticket, service)
        text = self._get(self.cas_url + '/serviceValidate', params,
                         ValidationError)
        return parse_validation_response(text)

    def get_proxy_ticket(self, pgtiou, target_service):
        """
        Asks the PGT callback server to trade the PGT behind pgtiou for a
        proxy ticket to target_service.
        """
        if not self.pgt_url:
            raise ProxyTicketError('No PGT callback server configured')

        text = self._get(self.pgt_url.rstrip('/') + '/getProxyTicket',
                         {'pgtiou': pgtiou, 'service': target_service},
                         ProxyTicketError)
        ticket = text.strip()
        if not ticket:
            raise ProxyTicketError('PGT callback server returned no ticket')
        return ticket

    def request_proxy_ticket(self, pgt, target_service):
        """Requests a proxy ticket from CAS directly, given the PGT itself."""
        text = self._get(self.cas_url + '/proxy',
                         {'pgt': pgt, 'targetService': target_service},
                         ProxyTicketError)
        return parse_proxy_response(text)
