# ============================================================================
# SCOPE: INFRASTRUCTURE LAYER (Scheduling)
# Description: Patient notification channels.
# ============================================================================
from .http_gateway import EmailGatewayChannel, HttpGatewayChannel, SmsGatewayChannel
from .voice_session import VoiceSessionChannel

__all__ = [
    "EmailGatewayChannel",
    "HttpGatewayChannel",
    "SmsGatewayChannel",
    "VoiceSessionChannel",
]
