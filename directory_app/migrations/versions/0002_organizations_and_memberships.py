"""associations, companies and memberships

Revision ID: 0002_organizations_and_memberships
Revises: 0001_identities_and_profiles
Create Date: 2026-09-14 00:10:00.000000
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0002_organizations_and_memberships'
down_revision = '0001_identities_and_profiles'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'associations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('contact_email', sa.String(length=255), nullable=False),
        sa.Column('logo', sa.String(length=1024), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_associations_name', 'associations', ['name'], unique=False)

    op.create_table(
        'companies',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('association_id', sa.Integer(), nullable=True),
        sa.Column('logo', sa.String(length=1024), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['association_id'], ['associations.id'], ),
    )
    op.create_index('ix_companies_name', 'companies', ['name'], unique=False)
    op.create_index('ix_companies_association_id', 'companies', ['association_id'], unique=False)

    op.create_table(
        'members',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='member'),
        sa.Column('designation', sa.String(length=255), nullable=True),
        sa.Column('department', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id'], ),
        sa.UniqueConstraint('user_id', 'company_id', name='uq_members_user_company'),
    )
    op.create_index('ix_members_user_id', 'members', ['user_id'], unique=False)
    op.create_index('ix_members_company_id', 'members', ['company_id'], unique=False)

    op.create_table(
        'association_managers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('association_id', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='manager'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['association_id'], ['associations.id'], ),
        sa.UniqueConstraint('user_id', 'association_id', name='uq_association_managers_user_association'),
    )
    op.create_index('ix_association_managers_user_id', 'association_managers', ['user_id'], unique=False)
    op.create_index('ix_association_managers_association_id', 'association_managers', ['association_id'], unique=False)


def downgrade():
    op.drop_index('ix_association_managers_association_id', table_name='association_managers')
    op.drop_index('ix_association_managers_user_id', table_name='association_managers')
    op.drop_table('association_managers')
    op.drop_index('ix_members_company_id', table_name='members')
    op.drop_index('ix_members_user_id', table_name='members')
    op.drop_table('members')
    op.drop_index('ix_companies_association_id', table_name='companies')
    op.drop_index('ix_companies_name', table_name='companies')
    op.drop_table('companies')
    op.drop_index('ix_associations_name', table_name='associations')
    op.drop_table('associations')
