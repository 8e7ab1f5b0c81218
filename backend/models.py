from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, JSON
from sqlalchemy.sql import func
from database import Base
from time_utils import utc_now


BOT_CONFIG_KEY = "hackathon-data"
BOT_HEARTBEAT_KEY = "kernel-bot"


class AdminUser(Base):
    __tablename__ = "admin_users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="admin")
    is_active = Column(Boolean, nullable=False, default=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class Participant(Base):
    __tablename__ = "participants"

    id = Column(Integer, primary_key=True, index=True)
    participant_id = Column(String(64), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(30), nullable=True)
    role = Column(String(100), nullable=True)
    team_name = Column(String(255), nullable=True)
    institute = Column(String(255), nullable=True)
    lab_allotted = Column(String(100), nullable=True)
    wifi_ssid = Column(String(100), nullable=True)
    wifi_password = Column(String(100), nullable=True)
    college_check_in = Column(Boolean, nullable=False, default=False)
    college_check_in_time = Column(DateTime(timezone=True), nullable=True)
    lab_check_in = Column(Boolean, nullable=False, default=False)
    lab_check_in_time = Column(DateTime(timezone=True), nullable=True)
    college_check_out = Column(Boolean, nullable=False, default=False)
    college_check_out_time = Column(DateTime(timezone=True), nullable=True)
    temp_lab_check_out = Column(Boolean, nullable=False, default=False)
    temp_lab_check_out_time = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, index=True)
    updated_at = Column(DateTime(timezone=True), default=utc_now)


class Sponsor(Base):
    __tablename__ = "sponsors"

    id = Column(Integer, primary_key=True, index=True)
    sponsor_id = Column(String(64), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(30), nullable=True)
    role = Column(String(100), nullable=True)
    company_name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, index=True)
    updated_at = Column(DateTime(timezone=True), default=utc_now)


class BackupLog(Base):
    __tablename__ = "backup_logs"

    id = Column(Integer, primary_key=True, index=True)
    success = Column(Boolean, nullable=False)
    count = Column(Integer, nullable=True)
    filename = Column(String(255), nullable=True)
    file_url = Column(String(1000), nullable=True)
    error = Column(Text, nullable=True)
    duration_ms = Column(Integer, nullable=False, default=0)
    time = Column(DateTime(timezone=True), default=utc_now, index=True)
    source = Column(String(10), nullable=False, default="cron")  # "cron" | "manual"


class BotConfig(Base):
    __tablename__ = "bot_config"

    key = Column(String(64), primary_key=True, default=BOT_CONFIG_KEY)
    data = Column(JSON, nullable=False)
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime(timezone=True), default=utc_now)
    updated_by = Column(String(255), nullable=True)


class BotConfigHistory(Base):
    __tablename__ = "bot_config_history"

    id = Column(Integer, primary_key=True, index=True)
    snapshot_of = Column(String(64), ForeignKey("bot_config.key"), nullable=False, index=True)
    data = Column(JSON, nullable=False)
    version = Column(Integer, nullable=False)
    saved_at = Column(DateTime(timezone=True), default=utc_now, index=True)
    saved_by = Column(String(255), nullable=True)


class BotHeartbeat(Base):
    __tablename__ = "bot_heartbeat"

    key = Column(String(64), primary_key=True, default=BOT_HEARTBEAT_KEY)
    last_seen = Column(DateTime(timezone=True), nullable=False)
    tag = Column(String(100), nullable=True)
    ping = Column(Integer, nullable=True)
    guild_count = Column(Integer, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)


class BotLog(Base):
    __tablename__ = "bot_logs"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String(30), nullable=False, index=True)  # ai_mention | prefix_command | scheduled | error
    event = Column(String(255), nullable=True)
    user_id = Column(String(64), nullable=True)
    username = Column(String(255), nullable=True)
    channel_id = Column(String(64), nullable=True)
    detail = Column(Text, nullable=True)
    success = Column(Boolean, nullable=False, default=True)
    duration_ms = Column(Integer, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=utc_now, index=True)


class ScheduledMessage(Base):
    __tablename__ = "scheduled_messages"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    channel_id = Column(String(64), nullable=False)
    message_format = Column(String(10), nullable=False, default="plain")  # "plain" | "embed"
    content = Column(Text, nullable=True)
    embed_title = Column(String(255), nullable=True)
    embed_color = Column(String(16), nullable=False, default="#FF6B35")
    schedule_type = Column(String(10), nullable=False)  # "once" | "recurring"
    cron_expression = Column(String(100), nullable=True)
    send_at = Column(DateTime(timezone=True), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    sent = Column(Boolean, nullable=False, default=False)
    sent_count = Column(Integer, nullable=False, default=0)
    last_sent_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, index=True)
    created_by = Column(String(255), nullable=True)
