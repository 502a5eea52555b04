from .errors import (
    AuctionError,
    ValidationError,
    ForbiddenError,
    NotFoundError,
    ConflictError,
    InfrastructureError,
    ConcurrentUpdateError,
)
from .events import (
    AuctionEvent,
    Publisher,
    NullPublisher,
    auction_topic,
)
from .state_machine import (
    AuctionSpec,
    AuctionStateMachine,
)
from .service import (
    AuctionService,
    AuctionSettings,
)
from .scheduler import AuctionScheduler
