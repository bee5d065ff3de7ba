"""member invitations and their audit trail

Revision ID: 0003_member_invitations
Revises: 0002_organizations_and_memberships
Create Date: 2026-09-14 00:20:00.000000
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0003_member_invitations'
down_revision = '0002_organizations_and_memberships'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'member_invitations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=120), nullable=False),
        sa.Column('last_name', sa.String(length=120), nullable=False),
        sa.Column('organization_id', sa.Integer(), nullable=False),
        sa.Column('organization_type', sa.String(length=20), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='member'),
        sa.Column('designation', sa.String(length=255), nullable=True),
        sa.Column('department', sa.String(length=255), nullable=True),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('invited_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('accepted_at', sa.DateTime(), nullable=True),
        sa.Column('accepted_by', sa.Integer(), nullable=True),
        sa.Column('revoked_at', sa.DateTime(), nullable=True),
        sa.Column('revoked_by', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['invited_by'], ['users.id'], ),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'expired', 'revoked')", name='ck_member_invitations_status'
        ),
        sa.CheckConstraint(
            "organization_type IN ('company', 'association')", name='ck_member_invitations_organization_type'
        ),
    )
    op.create_index('ix_member_invitations_token_hash', 'member_invitations', ['token_hash'], unique=True)
    op.create_index('ix_member_invitations_email', 'member_invitations', ['email'], unique=False)
    op.create_index('ix_member_invitations_organization_id', 'member_invitations', ['organization_id'], unique=False)
    op.create_index('ix_member_invitations_expires_at', 'member_invitations', ['expires_at'], unique=False)
    op.create_index('ix_member_invitations_status', 'member_invitations', ['status'], unique=False)
    op.create_index('ix_member_invitations_created_at', 'member_invitations', ['created_at'], unique=False)

    op.create_table(
        'member_invitation_audit',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('invitation_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=20), nullable=False),
        sa.Column('performed_by', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['invitation_id'], ['member_invitations.id'], ),
    )
    op.create_index(
        'ix_member_invitation_audit_invitation_id', 'member_invitation_audit', ['invitation_id'], unique=False
    )


def downgrade():
    op.drop_index('ix_member_invitation_audit_invitation_id', table_name='member_invitation_audit')
    op.drop_table('member_invitation_audit')
    op.drop_index('ix_member_invitations_created_at', table_name='member_invitations')
    op.drop_index('ix_member_invitations_status', table_name='member_invitations')
    op.drop_index('ix_member_invitations_expires_at', table_name='member_invitations')
    op.drop_index('ix_member_invitations_organization_id', table_name='member_invitations')
    op.drop_index('ix_member_invitations_email', table_name='member_invitations')
    op.drop_index('ix_member_invitations_token_hash', table_name='member_invitations')
    op.drop_table('member_invitations')
