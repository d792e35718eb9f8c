from sqlalchemy import Boolean, Column, DateTime, Enum, Float, ForeignKey, Index, Integer, Text, UniqueConstraint, text
from sqlalchemy.orm import declarative_base, relationship

from ..clock import utcnow

Base = declarative_base()
metadata = Base.metadata


class Users(Base):
    __tablename__ = 'users'

    name = Column(Text, nullable=False)
    role = Column(Enum('customer', 'provider', 'admin', name='user_role'), nullable=False, server_default=text("'customer'"))
    is_active = Column(Boolean, nullable=False, default=True)
    rating_average = Column(Float, nullable=False, default=0.0)
    rating_count = Column(Integer, nullable=False, default=0)
    id = Column(Integer, primary_key=True)
    email = Column(Text, unique=True)
    phone = Column(Text)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    services = relationship('Services', back_populates='provider')
    wallet = relationship('Wallets', back_populates='user', uselist=False)


class Categories(Base):
    __tablename__ = 'categories'

    name = Column(Text, nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)
    id = Column(Integer, primary_key=True)
    description = Column(Text)
    icon = Column(Text)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class Services(Base):
    __tablename__ = 'services'

    provider_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(Text, nullable=False)
    category = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    price = Column(Float, nullable=False)
    price_type = Column(Enum('fixed', 'hourly', 'negotiable', name='price_type'), nullable=False, server_default=text("'hourly'"))
    duration_min = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    rating_average = Column(Float, nullable=False, default=0.0)
    rating_count = Column(Integer, nullable=False, default=0)
    id = Column(Integer, primary_key=True)
    # JSON list of strings
    services_offered = Column(Text, nullable=False, server_default=text("'[]'"))
    location_address = Column(Text)
    location_lat = Column(Float)
    location_lng = Column(Float)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    provider = relationship('Users', back_populates='services')
    bookings = relationship('Bookings', back_populates='service')


class AvailabilityDays(Base):
    __tablename__ = 'availability_days'
    __table_args__ = (
        UniqueConstraint('provider_id', 'date'),
    )

    provider_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    date = Column(Text, nullable=False)  # YYYY-MM-DD
    is_available = Column(Boolean, nullable=False, default=True)
    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    slots = relationship(
        'AvailabilitySlots',
        back_populates='day',
        order_by='AvailabilitySlots.start_time',
        cascade='all, delete-orphan',
    )


class AvailabilitySlots(Base):
    __tablename__ = 'availability_slots'
    __table_args__ = (
        UniqueConstraint('day_id', 'start_time'),
    )

    day_id = Column(ForeignKey('availability_days.id', ondelete='CASCADE'), nullable=False)
    start_time = Column(Text, nullable=False)  # HH:MM
    end_time = Column(Text, nullable=False)    # HH:MM
    is_booked = Column(Boolean, nullable=False, default=False)
    id = Column(Integer, primary_key=True)
    booking_id = Column(ForeignKey('bookings.id', ondelete='SET NULL'))

    day = relationship('AvailabilityDays', back_populates='slots')


class Bookings(Base):
    __tablename__ = 'bookings'
    __table_args__ = (
        Index('ix_bookings_customer_created', 'customer_id', 'created_at'),
        Index('ix_bookings_provider_created', 'provider_id', 'created_at'),
    )

    customer_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    provider_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    service_id = Column(ForeignKey('services.id'), nullable=False)
    date = Column(Text, nullable=False)  # YYYY-MM-DD
    time = Column(Text, nullable=False)  # HH:MM, a slot start_time
    duration_minutes = Column(Integer, nullable=False)
    status = Column(Text, nullable=False, server_default=text("'pending'"), index=True)
    total_amount = Column(Float, nullable=False)
    currency = Column(Text, nullable=False, server_default=text("'NGN'"))
    payment_status = Column(Text, nullable=False, server_default=text("'pending'"))
    id = Column(Integer, primary_key=True)
    # "<provider_id>:<date>:<time>" while the booking holds its slot, NULL once
    # terminal. Unique → one non-terminal booking per provider/date/time.
    active_slot_key = Column(Text, unique=True)
    notes = Column(Text)
    address_street = Column(Text)
    address_city = Column(Text)
    address_state = Column(Text)
    address_zip_code = Column(Text)
    address_country = Column(Text)
    completed_at = Column(DateTime)
    rating_value = Column(Integer)
    rating_comment = Column(Text)
    rated_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    customer = relationship('Users', foreign_keys=[customer_id])
    provider = relationship('Users', foreign_keys=[provider_id])
    service = relationship('Services', back_populates='bookings')


class Wallets(Base):
    __tablename__ = 'wallets'

    user_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True)
    balance = Column(Float, nullable=False, default=0.0)
    currency = Column(Text, nullable=False, server_default=text("'NGN'"))
    is_blocked = Column(Boolean, nullable=False, default=False)
    id = Column(Integer, primary_key=True)

    user = relationship('Users', back_populates='wallet')
    wallet_transactions = relationship('WalletTransactions', back_populates='wallet')


class WalletTransactions(Base):
    __tablename__ = 'wallet_transactions'

    wallet_id = Column(ForeignKey('wallets.id', ondelete='CASCADE'), nullable=False, index=True)
    type = Column(Enum('credit', 'debit', name='wallet_tx_type'), nullable=False)
    amount = Column(Float, nullable=False)
    currency = Column(Text, nullable=False, server_default=text("'NGN'"))
    description = Column(Text, nullable=False)
    reference = Column(Text, nullable=False, unique=True)
    status = Column(Enum('pending', 'completed', 'failed', 'refunded', name='wallet_tx_status'), nullable=False, server_default=text("'completed'"))
    id = Column(Integer, primary_key=True)
    booking_id = Column(ForeignKey('bookings.id', ondelete='SET NULL'))
    counterparty_id = Column(ForeignKey('users.id', ondelete='SET NULL'))
    created_at = Column(DateTime, nullable=False, default=utcnow)

    wallet = relationship('Wallets', back_populates='wallet_transactions')


class Conversations(Base):
    __tablename__ = 'conversations'

    id = Column(Integer, primary_key=True)
    service_id = Column(ForeignKey('services.id', ondelete='SET NULL'), index=True)
    booking_id = Column(ForeignKey('bookings.id', ondelete='SET NULL'), index=True)
    # Snapshot of the newest message
    last_message_content = Column(Text)
    last_message_sender_id = Column(ForeignKey('users.id', ondelete='SET NULL'))
    last_message_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    participants = relationship(
        'ConversationParticipants',
        back_populates='conversation',
        cascade='all, delete-orphan',
        order_by='ConversationParticipants.id',
    )
    service = relationship('Services')


class ConversationParticipants(Base):
    __tablename__ = 'conversation_participants'
    __table_args__ = (
        UniqueConstraint('conversation_id', 'user_id'),
    )

    conversation_id = Column(ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False)
    user_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    # Derived counter, corrected whenever unread counts are recomputed
    unread_count = Column(Integer, nullable=False, default=0)
    id = Column(Integer, primary_key=True)
    last_read_message_id = Column(ForeignKey('messages.id', ondelete='SET NULL'))
    last_read_at = Column(DateTime)

    conversation = relationship('Conversations', back_populates='participants')
    user = relationship('Users')


class Messages(Base):
    __tablename__ = 'messages'
    __table_args__ = (
        Index('ix_messages_conversation_created', 'conversation_id', 'created_at'),
    )

    conversation_id = Column(ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False)
    sender_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    recipient_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    content = Column(Text, nullable=False)
    content_type = Column(Enum('text', 'image', 'document', 'location', name='message_content_type'), nullable=False, server_default=text("'text'"))
    is_read = Column(Boolean, nullable=False, default=False)
    is_delivered = Column(Boolean, nullable=False, default=False)
    status = Column(Enum('sent', 'delivered', 'read', name='message_status'), nullable=False, server_default=text("'sent'"))
    id = Column(Integer, primary_key=True)
    read_at = Column(DateTime)
    delivered_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    sender = relationship('Users', foreign_keys=[sender_id])


class Notifications(Base):
    __tablename__ = 'notifications'
    __table_args__ = (
        Index('ix_notifications_user_created', 'user_id', 'created_at'),
        Index('ix_notifications_user_read', 'user_id', 'is_read'),
    )

    user_id = Column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    type = Column(Enum('booking', 'payment', 'review', 'system', 'message', name='notification_type'), nullable=False, server_default=text("'system'"))
    is_read = Column(Boolean, nullable=False, default=False)
    id = Column(Integer, primary_key=True)
    # JSON object: booking_id / service_id / message_id
    data = Column(Text, nullable=False, server_default=text("'{}'"))
    read_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utcnow)
