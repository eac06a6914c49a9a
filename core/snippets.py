"""Tracking and receiver snippet generation for the integration and deployment pages."""

from enum import Enum
from typing import Optional

DEFAULT_ORIGIN = "http://localhost:3000"


class TransportMethod(Enum):
    SEND_BEACON = "sendBeacon"
    FETCH = "fetch"
    XHR = "xhr"


_TEMPLATES = {
    TransportMethod.SEND_BEACON: """// Recommended: Reliable and non-blocking
const data = JSON.stringify({{
  event: 'pageview',
  url: window.location.pathname,
  ts: Date.now()
}});

navigator.sendBeacon('{url}', data);""",
    TransportMethod.FETCH: """// Standard: Modern and flexible
fetch('{url}', {{
  method: 'POST',
  keepalive: true,
  body: JSON.stringify({{
    event: 'pageview',
    url: window.location.pathname
  }}),
  headers: {{ 'Content-Type': 'application/json' }}
}});""",
    TransportMethod.XHR: """// Legacy: For older environments
var xhr = new XMLHttpRequest();
xhr.open('POST', '{url}', true);
xhr.setRequestHeader('Content-Type', 'application/json');

xhr.send(JSON.stringify({{
  event: 'pageview',
  url: window.location.pathname
}}));""",
}


def generate_snippet(
    method: TransportMethod = TransportMethod.SEND_BEACON,
    endpoint: Optional[str] = None,
    origin: str = DEFAULT_ORIGIN,
) -> str:
    """Return the JavaScript tracking snippet for `method`, posting to `endpoint`
    or `<origin>/api/collect` when no endpoint is configured."""
    target_url = endpoint or f"{origin.rstrip('/')}/api/collect"
    return _TEMPLATES[TransportMethod(method)].format(url=target_url)


RECEIVER_TEMPLATE = """export default {
  async fetch(request) {
    if (request.method === 'OPTIONS') {
      return new Response(null, {
        headers: {
          'Access-Control-Allow-Origin': '%(allow_origin)s',
          'Access-Control-Allow-Methods': 'POST, OPTIONS',
          'Access-Control-Allow-Headers': 'Content-Type'
        }
      });
    }

    if (request.method === 'POST') {
      const data = await request.json();
      console.log('Event Received:', JSON.stringify(data, null, 2));
      return new Response('OK', { headers: { 'Access-Control-Allow-Origin': '%(allow_origin)s' } });
    }

    return new Response('LiteTrack Endpoint Online', { status: 200 });
  }
};"""


def generate_receiver_snippet(allow_origin: str = "*") -> str:
    """Cloudflare Worker that answers CORS preflight and logs each POSTed event."""
    return RECEIVER_TEMPLATE % {"allow_origin": allow_origin}
