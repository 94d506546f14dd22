# turnkit

Building blocks for TURN (Traversal Using Relays around NAT) and STUN,
using only the standard library.

What is in the package:

- `turnkit.stun` – encoding and decoding of STUN messages (with optional
  MESSAGE-INTEGRITY and FINGERPRINT), TURN ChannelData frames,
  XOR-address and ERROR-CODE attribute values, and the long-term credential key.
- `turnkit.allocation` – server-side `Allocation` objects with their
  `Permission`s and `ChannelBind`s, lifetime timers, a response cache for
  retransmitted requests, and `packet_handler`, which relays datagrams from a
  relay socket to the client as ChannelData or Data indications.
- `turnkit.binding` – `BindingManager`, which hands out channel numbers
  (0x4000–0x7FFF, wrapping around) and tracks bindings by number and by peer.
- `turnkit.permission_map` – `PermissionMap`, client-side permission state
  keyed by peer IP.
- `turnkit.five_tuple` – `FiveTuple` and `Protocol`, the identity of a client's
  allocation.
- `turnkit.ipnet` – `UDPAddr`, `TCPAddr`, `addr_ip_port` and `addr_equal`.
- `turnkit.periodic_timer` – `PeriodicTimer`, calling a handler at a fixed interval.
- `turnkit.trylock` – `TryLock`, a lock that raises instead of waiting.
- `turnkit.errors` – the exception types, all subclasses of `TurnError`.

## Installation

```
pip install turnkit
```

To run the tests:

```
pip install "turnkit[test]"
pytest
```

## STUN messages

```python
from turnkit.stun import (
    AttrType, Message, MessageClass, MessageType, Method,
    decode_message, decode_xor_address, encode_xor_address,
    is_message, long_term_key,
)

msg = Message(MessageType(Method.BINDING, MessageClass.REQUEST))
msg.add(AttrType.SOFTWARE, b"example")
msg.add(AttrType.XOR_PEER_ADDRESS,
        encode_xor_address("192.0.2.1", 5000, msg.transaction_id))

password = "password"
key = long_term_key("user", "example.com", password)
raw = msg.encode(integrity_key=key, fingerprint=True)

assert is_message(raw)
parsed = decode_message(raw)
ip, port = decode_xor_address(parsed.get(AttrType.XOR_PEER_ADDRESS),
                              parsed.transaction_id)
```

`decode_message` raises `FailedToDecodeSTUNError` for malformed input;
`Message.get` raises `KeyError` when the attribute is absent. Integrity and
fingerprint attributes are written on encode but not verified on decode.

## ChannelData

```python
from turnkit.stun import ChannelData, decode_channel_data, is_channel_data

frame = ChannelData(0x4000, b"hello").encode()   # padded to 4 bytes
assert is_channel_data(frame)
assert decode_channel_data(frame).data == b"hello"
```

## Allocations

```python
from turnkit.allocation import Allocation, ChannelBind, Permission
from turnkit.ipnet import UDPAddr

alloc = Allocation()
peer = UDPAddr("192.0.2.1", 5000)

alloc.add_permission(Permission(peer))            # lasts five minutes
alloc.add_channel_bind(ChannelBind(0x4000, peer), 600)
assert alloc.get_channel_by_addr(peer).number == 0x4000

alloc.close()                                      # stops every timer
```

Binding the same channel number to a different peer, or the same peer to a
different number, raises `SameChannelDifferentPeerError`. Permissions are
keyed by IP only, so a second permission for the same IP refreshes the first.

To relay, set `relay_socket` (a UDP socket), `turn_socket` and `five_tuple`
on the allocation, arm its lifetime with `start_lifetime(seconds, callback)`,
and run `packet_handler(on_read_error)` in a thread.

## What this package does not do

There is no ready-made TURN client in the package: nothing here opens a
connection to a TURN server, performs Allocate, Refresh or CreatePermission
transactions with retransmission, or offers a relayed connection object.
There is no allocation manager and no TURN server loop either, and no
command-line program. The modules above are the pieces such programs are
built from.