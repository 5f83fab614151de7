"""
Initial ComuniGov schema

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(), onupdate=sa.func.now()),
    ]


def upgrade() -> None:
    """Create all ComuniGov tables."""

    # Entities and users
    op.create_table(
        'entities',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('name', sa.String(300), nullable=False, index=True),
        sa.Column('type', sa.Enum('secretariat', 'administrative_unit', 'external_entity', 'government_agency', 'association', 'council', name='entitytype'), nullable=False, index=True),
        sa.Column('head_name', sa.String(200), nullable=False),
        sa.Column('head_position', sa.String(200), nullable=False),
        sa.Column('head_email', sa.String(255), nullable=False),
        sa.Column('address', sa.Text, nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('website', sa.String(500), nullable=True),
        sa.Column('social_media', sa.String(500), nullable=True),
        sa.Column('tags', sa.JSON, nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'users',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('username', sa.String(100), nullable=False, unique=True, index=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True, index=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(200), nullable=False),
        sa.Column('role', sa.Enum('master_implementer', 'entity_head', 'entity_member', name='userrole'), nullable=False, index=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('whatsapp', sa.String(50), nullable=True),
        sa.Column('telegram', sa.String(100), nullable=True),
        sa.Column('position', sa.String(200), nullable=True),
        sa.Column('entity_id', sa.String(15), sa.ForeignKey('entities.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('require_password_change', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('notify_email', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('notify_system', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('notify_whatsapp', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('notify_telegram', sa.Boolean, nullable=False, server_default=sa.false()),
        *_timestamps(),
    )

    # Subjects and meetings
    op.create_table(
        'subjects',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('name', sa.String(300), nullable=False, index=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('created_by_id', sa.String(15), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        *_timestamps(),
    )

    op.create_table(
        'subject_entities',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('subject_id', sa.String(15), sa.ForeignKey('subjects.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('entity_id', sa.String(15), sa.ForeignKey('entities.id', ondelete='CASCADE'), nullable=False, index=True),
        *_timestamps(),
        sa.UniqueConstraint('subject_id', 'entity_id', name='uq_subject_entities_subject_entity'),
    )

    op.create_table(
        'meetings',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('name', sa.String(300), nullable=False),
        sa.Column('agenda', sa.Text, nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column('start_time', sa.String(5), nullable=False),
        sa.Column('end_time', sa.String(5), nullable=False),
        sa.Column('location', sa.String(300), nullable=True),
        sa.Column('subject', sa.String(300), nullable=True),
        sa.Column('is_registered_subject', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('subject_id', sa.String(15), sa.ForeignKey('subjects.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('created_by_id', sa.String(15), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        *_timestamps(),
    )

    op.create_table(
        'meeting_attendees',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('meeting_id', sa.String(15), sa.ForeignKey('meetings.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('user_id', sa.String(15), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('confirmed', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('attended', sa.Boolean, nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.UniqueConstraint('meeting_id', 'user_id', name='uq_meeting_attendees_meeting_user'),
    )

    op.create_table(
        'meeting_documents',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('meeting_id', sa.String(15), sa.ForeignKey('meetings.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('name', sa.String(300), nullable=False),
        sa.Column('type', sa.String(100), nullable=False),
        sa.Column('file_path', sa.String(500), nullable=False),
        sa.Column('file_size', sa.Integer, nullable=True),
        sa.Column('uploaded_by_id', sa.String(15), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'meeting_reactions',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('meeting_id', sa.String(15), sa.ForeignKey('meetings.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('user_id', sa.String(15), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('emoji', sa.Enum('👍', '👎', '❤️', '🎉', '🤔', '😄', '😢', '👏', name='reactionemoji'), nullable=False),
        *_timestamps(),
    )

    # Tasks
    op.create_table(
        'tasks',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('title', sa.String(300), nullable=False),
        sa.Column('description', sa.Text, nullable=False),
        sa.Column('deadline', sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column('status', sa.Enum('pending', 'in_progress', 'completed', 'cancelled', name='taskstatus'), nullable=False, index=True),
        sa.Column('subject_id', sa.String(15), sa.ForeignKey('subjects.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('is_registered_user', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('assigned_to_user_id', sa.String(15), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('owner_name', sa.String(200), nullable=True),
        sa.Column('owner_email', sa.String(255), nullable=True),
        sa.Column('owner_phone', sa.String(50), nullable=True),
        sa.Column('created_by_id', sa.String(15), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('entity_id', sa.String(15), sa.ForeignKey('entities.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('meeting_id', sa.String(15), sa.ForeignKey('meetings.id', ondelete='SET NULL'), nullable=True, index=True),
        *_timestamps(),
    )

    op.create_table(
        'task_comments',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('task_id', sa.String(15), sa.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('user_id', sa.String(15), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('content', sa.Text, nullable=False),
        *_timestamps(),
    )

    # Communications
    op.create_table(
        'communications',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('subject', sa.String(300), nullable=False),
        sa.Column('content', sa.Text, nullable=False),
        sa.Column('channel', sa.Enum('email', 'whatsapp', 'telegram', 'system_notification', name='communicationchannel'), nullable=False, index=True),
        sa.Column('sent_by_id', sa.String(15), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('has_attachments', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('delivery_pending', sa.Boolean, nullable=False, server_default=sa.false()),
        *_timestamps(),
    )

    op.create_table(
        'communication_recipients',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('communication_id', sa.String(15), sa.ForeignKey('communications.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('user_id', sa.String(15), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=True, index=True),
        sa.Column('entity_id', sa.String(15), sa.ForeignKey('entities.id', ondelete='CASCADE'), nullable=True, index=True),
        sa.Column('read', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'communication_files',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('communication_id', sa.String(15), sa.ForeignKey('communications.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('name', sa.String(300), nullable=False),
        sa.Column('type', sa.String(100), nullable=False),
        sa.Column('file_path', sa.String(500), nullable=False),
        sa.Column('file_size', sa.Integer, nullable=False, server_default='0'),
        sa.Column('uploaded_by_id', sa.String(15), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        *_timestamps(),
    )

    # Public hearings
    op.create_table(
        'public_hearings',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('title', sa.String(300), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column('start_time', sa.String(5), nullable=False),
        sa.Column('end_time', sa.String(5), nullable=False),
        sa.Column('location', sa.String(300), nullable=False),
        sa.Column('status', sa.Enum('scheduled', 'in_progress', 'completed', 'cancelled', name='publichearingstatus'), nullable=False, index=True),
        sa.Column('entity_id', sa.String(15), sa.ForeignKey('entities.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('created_by_id', sa.String(15), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'public_hearing_files',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('public_hearing_id', sa.String(15), sa.ForeignKey('public_hearings.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('name', sa.String(300), nullable=False),
        sa.Column('type', sa.String(100), nullable=False),
        sa.Column('file_path', sa.String(500), nullable=False),
        sa.Column('file_size', sa.Integer, nullable=False, server_default='0'),
        sa.Column('uploaded_by_id', sa.String(15), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        *_timestamps(),
    )

    # Badges
    op.create_table(
        'achievement_badges',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False, unique=True),
        sa.Column('description', sa.Text, nullable=False),
        sa.Column('icon', sa.String(100), nullable=False),
        sa.Column('category', sa.String(100), nullable=False, index=True),
        sa.Column('level', sa.Integer, nullable=False, server_default='1'),
        sa.Column('criteria', sa.JSON, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'user_badges',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('user_id', sa.String(15), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('badge_id', sa.String(15), sa.ForeignKey('achievement_badges.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('earned_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('progress', sa.JSON, nullable=True),
        sa.Column('featured', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('seen', sa.Boolean, nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'badge_id', name='uq_user_badges_user_badge'),
    )

    # Activity log
    op.create_table(
        'user_activity_logs',
        sa.Column('id', sa.String(15), primary_key=True),
        sa.Column('user_id', sa.String(15), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('action', sa.Enum('login', 'logout', 'view', 'create', 'update', 'delete', 'send', 'download', 'upload', name='useraction'), nullable=False, index=True),
        sa.Column('description', sa.Text, nullable=False),
        sa.Column('entity_type', sa.String(100), nullable=False, index=True),
        sa.Column('entity_id', sa.String(15), nullable=True),
        sa.Column('ip_address', sa.String(100), nullable=True),
        sa.Column('user_agent', sa.Text, nullable=True),
        sa.Column('metadata', sa.JSON, nullable=True),
        *_timestamps(),
    )


def downgrade() -> None:
    """Drop all ComuniGov tables."""
    for table in (
        'user_activity_logs', 'user_badges', 'achievement_badges',
        'public_hearing_files', 'public_hearings',
        'communication_files', 'communication_recipients', 'communications',
        'task_comments', 'tasks',
        'meeting_reactions', 'meeting_documents', 'meeting_attendees', 'meetings',
        'subject_entities', 'subjects', 'users', 'entities',
    ):
        op.drop_table(table)

    for enum_name in (
        'useraction', 'publichearingstatus', 'communicationchannel', 'taskstatus',
        'reactionemoji', 'userrole', 'entitytype',
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
