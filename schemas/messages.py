from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class InboundMessage(BaseModel):
    """Client -> server frame. Wire keys are camelCase."""

    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)


class CreateRoom(InboundMessage):
    type: Literal["create_room"]
    username: Optional[str] = None


class JoinRoom(InboundMessage):
    type: Literal["join_room"]
    # Left untyped so a malformed code reaches the handler and gets an error reply
    room_code: Any = Field(default=None, alias="roomCode")
    username: Optional[str] = None


class RequestPeerList(InboundMessage):
    type: Literal["request_peer_list"]


class WebRTCOffer(InboundMessage):
    type: Literal["webrtc_offer"]
    target_id: str = Field(alias="targetId")
    offer: Any = None


class WebRTCAnswer(InboundMessage):
    type: Literal["webrtc_answer"]
    target_id: str = Field(alias="targetId")
    answer: Any = None


class IceCandidate(InboundMessage):
    type: Literal["ice_candidate"]
    target_id: str = Field(alias="targetId")
    candidate: Any = None


class ShareSubtitle(InboundMessage):
    type: Literal["share_subtitle"]
    subtitle_data: Any = Field(default=None, alias="subtitleData")
    subtitle_name: Optional[str] = Field(default=None, alias="subtitleName")


class SubtitleText(InboundMessage):
    type: Literal["subtitle_text"]
    text: Any = None


class ClientReady(InboundMessage):
    type: Literal["client_ready"]


class Play(InboundMessage):
    type: Literal["play"]
    current_time: float = Field(alias="currentTime")


class Pause(InboundMessage):
    type: Literal["pause"]
    current_time: float = Field(alias="currentTime")


class Seek(InboundMessage):
    type: Literal["seek"]
    current_time: float = Field(alias="currentTime")


class HostTimeUpdate(InboundMessage):
    type: Literal["host_time_update"]
    current_time: float = Field(alias="currentTime")


class Skip(InboundMessage):
    type: Literal["skip"]
    offset: float


ClientMessage = Annotated[
    Union[
        CreateRoom,
        JoinRoom,
        RequestPeerList,
        WebRTCOffer,
        WebRTCAnswer,
        IceCandidate,
        ShareSubtitle,
        SubtitleText,
        ClientReady,
        Play,
        Pause,
        Seek,
        HostTimeUpdate,
        Skip,
    ],
    Field(discriminator="type"),
]

client_message_adapter = TypeAdapter(ClientMessage)


def parse_client_message(data: Any):
    """Validate a decoded JSON frame into one of the ClientMessage models.

    Raises pydantic.ValidationError for anything that is not a known event.
    """
    return client_message_adapter.validate_python(data)
