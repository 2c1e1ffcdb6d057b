"""
Voice provider client for outbound calls.

Usage:
    from channels.telephony import RetellClient
    client = RetellClient(api_key)
    call_id = await client.create_call(from_number, to_number, agent_id, metadata)
    detail = await client.get_call(call_id)
"""
from channels.telephony.retell_client import RetellClient

__all__ = ["RetellClient"]
