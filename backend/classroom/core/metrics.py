from prometheus_client import Counter, Gauge

SEAT_CLAIMS = Counter(
    'classroom_seat_claims_total',
    'Seat claim attempts',
    ['outcome']
)
CHAT_MESSAGES = Counter(
    'classroom_chat_messages_total',
    'Chat messages accepted',
    ['sender']
)
SESSIONS_CREATED = Counter(
    'classroom_sessions_created_total',
    'Sessions created'
)
ACTIVE_SUBSCRIPTIONS = Gauge(
    'classroom_realtime_subscriptions',
    'Live realtime subscriptions',
    ['mode']
)
DELIVERY_FALLBACKS = Counter(
    'classroom_realtime_fallbacks_total',
    'Push subscriptions that fell back to polling'
)
