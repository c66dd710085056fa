from sqlalchemy import create_engine, Column, Integer, String, Text, ForeignKey, DateTime
from sqlalchemy import Boolean, JSON
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from datetime import datetime, timezone

from core.config import DATABASE_URL

Base = declarative_base()

connect_args = {'check_same_thread': False} if DATABASE_URL.startswith('sqlite') else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


def utcnow():
    """Naive UTC timestamp; every DateTime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class TeamMember(Base):
    __tablename__ = 'team_member'
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slack_user_id = Column(String, nullable=False, unique=True)
    role = Column(String, nullable=True)
    is_founder = Column(Boolean, default=False)
    timezone = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class ChannelConfig(Base):
    __tablename__ = 'channel_config'
    id = Column(Integer, primary_key=True, index=True)
    channel_id = Column(String, nullable=False, unique=True)
    channel_name = Column(String, nullable=False)
    channel_type = Column(String, default='general')  # client, internal, project, general
    client_name = Column(String, nullable=True)
    requires_approval = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)


class Task(Base):
    __tablename__ = 'task'
    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    assigned_to = Column(Integer, ForeignKey('team_member.id'), nullable=True)
    assigned_by = Column(String, nullable=True)  # Slack user id of the operator
    channel_id = Column(String, nullable=True)
    status = Column(String, default='pending')  # pending, in_progress, completed, overdue, cancelled
    priority = Column(String, default='normal')  # low, normal, high, urgent
    deadline = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    reminder_50_sent = Column(Boolean, default=False)
    reminder_24h_sent = Column(Boolean, default=False)
    overdue_flagged = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    assignee = relationship('TeamMember')
    reminders = relationship('Reminder', back_populates='task', cascade='all, delete-orphan')


class Reminder(Base):
    __tablename__ = 'reminder'
    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey('task.id'), nullable=False)
    reminder_type = Column(String, nullable=False)  # 50_percent, 24_hour, overdue, custom
    scheduled_for = Column(DateTime, nullable=False)
    sent = Column(Boolean, default=False)
    sent_at = Column(DateTime, nullable=True)
    job_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    task = relationship('Task', back_populates='reminders')


class Approval(Base):
    __tablename__ = 'approval'
    id = Column(Integer, primary_key=True, index=True)
    approval_type = Column(String, default='client_message')
    requested_by = Column(String, nullable=False)
    approver = Column(String, nullable=True)
    status = Column(String, default='pending')  # pending, approved, rejected
    payload = Column(JSON, default=dict)
    target_channel = Column(String, nullable=True)
    slack_message_ts = Column(String, nullable=True)
    request_channel_id = Column(String, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class AuditLog(Base):
    __tablename__ = 'audit_log'
    id = Column(Integer, primary_key=True, index=True)
    action = Column(String, nullable=False)
    actor = Column(String, nullable=True)
    details = Column(JSON, nullable=True)
    channel_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)


# Create tables
Base.metadata.create_all(bind=engine)

# CRUD functions


def create_task(db, title, description=None, assigned_to=None, assigned_by=None,
                channel_id=None, priority='normal', deadline=None):
    task = Task(title=title, description=description, assigned_to=assigned_to,
                assigned_by=assigned_by, channel_id=channel_id, priority=priority,
                deadline=deadline, status='pending')
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


def update_task_status(db, task_id, status):
    task = db.query(Task).filter(Task.id == task_id).first()
    if task:
        task.status = status
        if status == 'completed' and task.completed_at is None:
            task.completed_at = utcnow()
        db.commit()
    return task


def set_task_flag(db, task_id, flag):
    task = db.query(Task).filter(Task.id == task_id).first()
    if task:
        setattr(task, flag, True)
        db.commit()
    return task


def mark_task_overdue_flagged(db, task_id):
    # Only flags a task that is still active and unflagged; returns rows changed.
    count = db.query(Task).filter(
        Task.id == task_id,
        Task.overdue_flagged == False,
        Task.status.in_(['pending', 'in_progress']),
    ).update({'overdue_flagged': True, 'status': 'overdue', 'updated_at': utcnow()},
             synchronize_session=False)
    db.commit()
    return count


def create_reminder(db, task_id, reminder_type, scheduled_for):
    reminder = Reminder(task_id=task_id, reminder_type=reminder_type, scheduled_for=scheduled_for)
    db.add(reminder)
    db.commit()
    db.refresh(reminder)
    return reminder


def get_reminder(db, reminder_id):
    return db.query(Reminder).filter(Reminder.id == reminder_id).first()


def set_reminder_job(db, reminder_id, job_id):
    reminder = db.query(Reminder).filter(Reminder.id == reminder_id).first()
    if reminder:
        reminder.job_id = job_id
        db.commit()
    return reminder


def mark_reminder_sent(db, reminder_id):
    reminder = db.query(Reminder).filter(Reminder.id == reminder_id).first()
    if reminder and not reminder.sent:
        reminder.sent = True
        reminder.sent_at = utcnow()
        db.commit()
    return reminder


def cancel_task_reminders(db, task_id):
    count = db.query(Reminder).filter(
        Reminder.task_id == task_id,
        Reminder.sent == False,
    ).update({'sent': True, 'sent_at': utcnow()}, synchronize_session=False)
    db.commit()
    return count


def create_approval(db, requested_by, payload, target_channel, approval_type='client_message'):
    approval = Approval(approval_type=approval_type, requested_by=requested_by,
                        payload=payload, target_channel=target_channel, status='pending')
    db.add(approval)
    db.commit()
    db.refresh(approval)
    return approval


def get_approval(db, approval_id):
    return db.query(Approval).filter(Approval.id == approval_id).first()


def update_pending_approval(db, approval_id, values):
    """Conditional single-row update applied only while the approval is pending."""
    count = db.query(Approval).filter(
        Approval.id == approval_id,
        Approval.status == 'pending',
    ).update(values, synchronize_session=False)
    db.commit()
    return count


def add_audit_log(db, action, actor=None, details=None, channel_id=None):
    entry = AuditLog(action=action, actor=actor, details=details, channel_id=channel_id)
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def get_all_team_members(db):
    return db.query(TeamMember).order_by(TeamMember.name.asc()).all()


def get_all_channel_configs(db):
    return db.query(ChannelConfig).order_by(ChannelConfig.channel_name.asc()).all()


def get_channel_config(db, channel_id):
    return db.query(ChannelConfig).filter(ChannelConfig.channel_id == channel_id).first()


def upsert_team_member(db, name, slack_user_id, role=None, is_founder=False, timezone=None):
    member = db.query(TeamMember).filter(TeamMember.slack_user_id == slack_user_id).first()
    if member is None:
        member = TeamMember(slack_user_id=slack_user_id)
        db.add(member)
    member.name = name
    member.role = role
    member.is_founder = is_founder
    member.timezone = timezone
    db.commit()
    db.refresh(member)
    return member


def upsert_channel_config(db, channel_id, channel_name, channel_type='general',
                          client_name=None, requires_approval=False):
    channel = db.query(ChannelConfig).filter(ChannelConfig.channel_id == channel_id).first()
    if channel is None:
        channel = ChannelConfig(channel_id=channel_id)
        db.add(channel)
    channel.channel_name = channel_name
    channel.channel_type = channel_type
    channel.client_name = client_name
    channel.requires_approval = requires_approval
    db.commit()
    db.refresh(channel)
    return channel
