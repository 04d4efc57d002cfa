import asyncio
from dataclasses import dataclass, field
from typing import Annotated, Any, Callable, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from feedengine.config.constants import REALTIME_POLL_PATH_PREFIX, DeliveryMode


class Topic(BaseModel):
    """What a subscription listens to, e.g. likes on one product"""

    data_type: str = Field(..., min_length=1)
    param: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def poll_path(self) -> str:
        if self.param:
            return f"{REALTIME_POLL_PATH_PREFIX}/{self.data_type}/{self.param}"
        return f"{REALTIME_POLL_PATH_PREFIX}/{self.data_type}"


@dataclass
class Subscription:
    """
    A registered interest in one topic.

    ``poll_task`` is owned by the subscription: it is set only while the
    delivery mode is POLL and must be cancelled before the mode changes or
    the subscription is dropped.
    """

    id: str
    topic: Topic
    callback: Callable[[Any], None]
    delivery_mode: DeliveryMode = DeliveryMode.POLL
    poll_task: Optional[asyncio.Task] = field(default=None, repr=False)


# Outbound control frames


class _Frame(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SubscribeFrame(_Frame):
    type: Literal["subscribe"] = "subscribe"
    subscription_id: str = Field(..., alias="subscriptionId")
    data_type: str = Field(..., alias="dataType")
    topic_param: Optional[str] = Field(None, alias="topicParam")


class UnsubscribeFrame(_Frame):
    type: Literal["unsubscribe"] = "unsubscribe"
    subscription_id: str = Field(..., alias="subscriptionId")


# Inbound frames


class UpdateFrame(_Frame):
    type: Literal["update"]
    subscription_id: str = Field(..., alias="subscriptionId")
    payload: Any = None


class ErrorFrame(_Frame):
    type: Literal["error"]
    subscription_id: Optional[str] = Field(None, alias="subscriptionId")
    message: str = ""


InboundFrame = Annotated[Union[UpdateFrame, ErrorFrame], Field(discriminator="type")]
InboundFrameAdapter = TypeAdapter(InboundFrame)


def encode_frame(frame: Union[SubscribeFrame, UnsubscribeFrame]) -> str:
    return frame.model_dump_json(by_alias=True)
