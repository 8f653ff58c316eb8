from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()
metadata = Base.metadata


class Providers(Base):
    __tablename__ = 'providers'

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)
    slug = Column(Text, unique=True)  # public booking page, NULL = none
    time_zone = Column(Text, nullable=False, server_default=text("'Europe/Belgrade'"))
    is_active = Column(Integer, nullable=False, server_default=text('1'))
    created_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))

    schedules = relationship('Schedules', back_populates='provider')
    event_types = relationship('EventTypes', back_populates='provider')
    out_of_office = relationship('OutOfOffice', back_populates='provider')
    bookings = relationship('Bookings', back_populates='provider')
    credentials = relationship('CalendarCredentials', back_populates='owner')
    hosts = relationship('Hosts', back_populates='provider')


class Schedules(Base):
    __tablename__ = 'schedules'

    id = Column(Integer, primary_key=True)
    provider_id = Column(ForeignKey('providers.id', ondelete='CASCADE'), nullable=False)
    name = Column(Text, nullable=False)
    time_zone = Column(Text)  # NULL = provider time zone
    is_default = Column(Integer, nullable=False, server_default=text('0'))

    provider = relationship('Providers', back_populates='schedules')
    rules = relationship(
        'AvailabilityRules',
        back_populates='schedule',
        order_by='AvailabilityRules.id',
        cascade='all, delete-orphan',
    )
    date_hours = relationship(
        'DateHoursOverrides',
        back_populates='schedule',
        order_by='DateHoursOverrides.id',
        cascade='all, delete-orphan',
    )


class AvailabilityRules(Base):
    __tablename__ = 'availability_rules'

    id = Column(Integer, primary_key=True)
    schedule_id = Column(ForeignKey('schedules.id', ondelete='CASCADE'), nullable=False)
    days = Column(Text, nullable=False, server_default=text("'[]'"))  # JSON, 0 = Sunday
    start_time = Column(Text, nullable=False)  # "HH:MM" local
    end_time = Column(Text, nullable=False)  # "HH:MM" local, "23:59" = end of day

    schedule = relationship('Schedules', back_populates='rules')


class DateHoursOverrides(Base):
    __tablename__ = 'date_hours_overrides'

    id = Column(Integer, primary_key=True)
    schedule_id = Column(ForeignKey('schedules.id', ondelete='CASCADE'), nullable=False)
    date = Column(Text, nullable=False)  # "YYYY-MM-DD" local
    start_time = Column(Text, nullable=False)
    end_time = Column(Text, nullable=False)  # start == end blocks the whole date

    schedule = relationship('Schedules', back_populates='date_hours')


class OutOfOffice(Base):
    __tablename__ = 'out_of_office'
    __table_args__ = (
        Index('ix_out_of_office_provider_range', 'provider_id', 'start', 'end'),
    )

    id = Column(Integer, primary_key=True)
    uuid = Column(Text, nullable=False, unique=True)
    provider_id = Column(ForeignKey('providers.id', ondelete='CASCADE'), nullable=False)
    start = Column(DateTime, nullable=False)  # UTC
    end = Column(DateTime, nullable=False)  # UTC
    reason = Column(Text)
    notes = Column(Text)
    enabled = Column(Integer, nullable=False, server_default=text('1'))
    created_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))

    provider = relationship('Providers', back_populates='out_of_office')


class CalendarCredentials(Base):
    __tablename__ = 'calendar_credentials'
    __table_args__ = (
        UniqueConstraint('provider_id', 'provider'),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(ForeignKey('providers.id', ondelete='CASCADE'), nullable=False)
    provider = Column(Text, nullable=False, server_default=text("'google_calendar'"))
    access_token = Column(Text)
    refresh_token = Column(Text)
    token_expires_at = Column(DateTime)  # UTC
    calendar_ids = Column(Text, nullable=False, server_default=text("'[]'"))  # JSON
    sync_enabled = Column(Integer, nullable=False, server_default=text('1'))
    invalid = Column(Integer, nullable=False, server_default=text('0'))
    last_sync_at = Column(DateTime)
    created_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))

    owner = relationship('Providers', back_populates='credentials')
    busy_intervals = relationship(
        'ExternalBusyIntervals',
        back_populates='credential',
        cascade='all, delete-orphan',
    )


class ExternalBusyIntervals(Base):
    __tablename__ = 'external_busy_intervals'
    __table_args__ = (
        Index('ix_external_busy_provider_range', 'provider_id', 'start', 'end'),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(ForeignKey('providers.id', ondelete='CASCADE'), nullable=False)
    credential_id = Column(ForeignKey('calendar_credentials.id', ondelete='CASCADE'))
    start = Column(DateTime, nullable=False)
    end = Column(DateTime, nullable=False)
    source = Column(Text, nullable=False, server_default=text("'google_calendar'"))

    credential = relationship('CalendarCredentials', back_populates='busy_intervals')


class EventTypes(Base):
    __tablename__ = 'event_types'
    __table_args__ = (
        UniqueConstraint('provider_id', 'slug'),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(ForeignKey('providers.id', ondelete='CASCADE'), nullable=False)
    schedule_id = Column(ForeignKey('schedules.id', ondelete='SET NULL'))  # NULL = default schedule
    title = Column(Text, nullable=False)
    slug = Column(Text, nullable=False)
    length_minutes = Column(Integer, nullable=False)
    before_event_buffer = Column(Integer, nullable=False, server_default=text('0'))
    after_event_buffer = Column(Integer, nullable=False, server_default=text('0'))
    minimum_booking_notice = Column(Integer, nullable=False, server_default=text('120'))
    slot_interval = Column(Integer)  # NULL = length_minutes
    requires_confirmation = Column(Integer, nullable=False, server_default=text('0'))
    is_active = Column(Integer, nullable=False, server_default=text('1'))

    provider = relationship('Providers', back_populates='event_types')
    schedule = relationship('Schedules')
    hosts = relationship('Hosts', secondary='event_type_hosts', back_populates='event_types')
    bookings = relationship('Bookings', back_populates='event_type')


class Hosts(Base):
    __tablename__ = 'hosts'
    __table_args__ = (
        UniqueConstraint('provider_id', 'email'),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(ForeignKey('providers.id', ondelete='CASCADE'), nullable=False)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=False)
    schedule_id = Column(ForeignKey('schedules.id', ondelete='SET NULL'))  # NULL = event type schedule
    is_active = Column(Integer, nullable=False, server_default=text('1'))

    provider = relationship('Providers', back_populates='hosts')
    schedule = relationship('Schedules')
    event_types = relationship('EventTypes', secondary='event_type_hosts', back_populates='hosts')
    bookings = relationship('Bookings', back_populates='host')


class EventTypeHosts(Base):
    __tablename__ = 'event_type_hosts'

    event_type_id = Column(ForeignKey('event_types.id', ondelete='CASCADE'), primary_key=True)
    host_id = Column(ForeignKey('hosts.id', ondelete='CASCADE'), primary_key=True)


class Bookings(Base):
    __tablename__ = 'bookings'
    __table_args__ = (
        Index('ix_bookings_provider_effective', 'provider_id', 'effective_start', 'effective_end'),
        Index('ix_bookings_host_effective', 'host_id', 'effective_start', 'effective_end'),
    )

    id = Column(Integer, primary_key=True)
    uid = Column(Text, nullable=False, unique=True)
    provider_id = Column(ForeignKey('providers.id', ondelete='CASCADE'), nullable=False)
    event_type_id = Column(ForeignKey('event_types.id'), nullable=False)
    title = Column(Text, nullable=False)
    start = Column(DateTime, nullable=False)  # UTC
    end = Column(DateTime, nullable=False)  # UTC
    effective_start = Column(DateTime, nullable=False)  # start - before_event_buffer
    effective_end = Column(DateTime, nullable=False)  # end + after_event_buffer
    status = Column(Text, nullable=False, server_default=text("'PENDING'"))
    notes = Column(Text)
    cancellation_reason = Column(Text)
    rejection_reason = Column(Text)
    rescheduled = Column(Integer, nullable=False, server_default=text('0'))
    host_id = Column(ForeignKey('hosts.id', ondelete='SET NULL'))  # NULL = provider's own calendar
    previous_start = Column(DateTime)
    reschedule_reason = Column(Text)
    created_at = Column(Text, nullable=False, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(Text, nullable=False, server_default=text('CURRENT_TIMESTAMP'))

    provider = relationship('Providers', back_populates='bookings')
    host = relationship('Hosts', back_populates='bookings')
    event_type = relationship('EventTypes', back_populates='bookings')
    attendees = relationship(
        'Attendees',
        back_populates='booking',
        order_by='Attendees.id',
        cascade='all, delete-orphan',
    )
    audit_entries = relationship(
        'BookingAudit',
        back_populates='booking',
        order_by='BookingAudit.id',
    )


class Attendees(Base):
    __tablename__ = 'attendees'

    id = Column(Integer, primary_key=True)
    booking_id = Column(ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=False)
    phone = Column(Text)
    time_zone = Column(Text, nullable=False, server_default=text("'Europe/Belgrade'"))
    locale = Column(Text, nullable=False, server_default=text("'sr'"))

    booking = relationship('Bookings', back_populates='attendees')


class BookingAudit(Base):
    __tablename__ = 'booking_audit'

    id = Column(Integer, primary_key=True)
    booking_id = Column(ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False)
    event_type = Column(Text, nullable=False)
    payload = Column(Text)
    created_at = Column(
        Text,
        nullable=False,
        server_default=text('CURRENT_TIMESTAMP')
    )

    booking = relationship('Bookings', back_populates='audit_entries')
