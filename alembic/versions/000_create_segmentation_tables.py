"""Create segmentation tables (organizations, users, invites, offers, segments, prospects)

Revision ID: 000_create_segmentation_tables
Revises:
Create Date: 2026-10-17

Note: prospects.segment_id uses ON DELETE SET NULL so a deleted segment can
never leave a dangling assignment, even for rows outside the deleting scope.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '000_create_segmentation_tables'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), onupdate=sa.func.now()),
    ]


def _scope_columns():
    return [
        sa.Column('owner_id', sa.Integer(), sa.ForeignKey('api_users.id'), nullable=False, index=True),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=True, index=True),
    ]


def upgrade():
    """Create segmentation tables."""
    op.create_table(
        'organizations',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'api_users',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('email', sa.String(255), unique=True, index=True, nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100)),
        sa.Column('last_name', sa.String(100)),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.Column(
            'organization_id', sa.Integer(),
            sa.ForeignKey('organizations.id', ondelete='SET NULL'),
            nullable=True, index=True,
        ),
        sa.Column('org_role', sa.String(20)),
        *_timestamps(),
    )

    op.create_table(
        'organization_invites',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column(
            'organization_id', sa.Integer(),
            sa.ForeignKey('organizations.id', ondelete='CASCADE'),
            nullable=False, index=True,
        ),
        sa.Column('email', sa.String(255), nullable=False, index=True),
        sa.Column('role', sa.String(20), nullable=False, server_default='member'),
        sa.Column('token', sa.String(64), unique=True, nullable=False, index=True),
        sa.Column('invited_by_id', sa.Integer(), sa.ForeignKey('api_users.id', ondelete='SET NULL')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'offer_templates',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        *_scope_columns(),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('price', sa.Numeric(10, 2)),
        *_timestamps(),
    )

    op.create_table(
        'icp_segments',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        *_scope_columns(),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('color', sa.String(7), nullable=False, server_default='#06b6d4'),
        sa.Column('rules', sa.JSON(), nullable=False),
        sa.Column(
            'offer_template_id', sa.Integer(),
            sa.ForeignKey('offer_templates.id', ondelete='SET NULL'),
            nullable=True,
        ),
        *_timestamps(),
    )

    op.create_table(
        'prospects',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        *_scope_columns(),
        # Business info
        sa.Column('company_name', sa.String(255), nullable=False),
        sa.Column('business_type', sa.String(100)),
        sa.Column('city', sa.String(100)),
        sa.Column('website', sa.String(500)),
        sa.Column('email', sa.String(255)),
        sa.Column('data_source', sa.String(50)),
        sa.Column('notes', sa.Text()),
        # Reputation
        sa.Column('rating', sa.Float()),
        sa.Column('review_count', sa.Integer()),
        sa.Column('years_in_business', sa.Integer()),
        sa.Column('employee_count', sa.Integer()),
        # Scores
        sa.Column('icp_score', sa.Integer()),
        sa.Column('lead_score', sa.Integer()),
        sa.Column('opportunity_score', sa.Integer()),
        sa.Column('sentiment_score', sa.Float()),
        sa.Column('tags', sa.JSON()),
        # Flags
        sa.Column('needs_website', sa.Boolean(), default=False),
        sa.Column('has_cms', sa.Boolean(), default=False),
        sa.Column('is_hot_lead', sa.Boolean(), default=False),
        sa.Column('is_converted', sa.Boolean(), default=False),
        sa.Column('contacted_at', sa.DateTime(timezone=True)),
        sa.Column(
            'segment_id', sa.Integer(),
            sa.ForeignKey('icp_segments.id', ondelete='SET NULL'),
            nullable=True, index=True,
        ),
        *_timestamps(),
    )
    op.create_index('ix_prospects_org_segment', 'prospects', ['organization_id', 'segment_id'])
    op.create_index('ix_prospects_owner_segment', 'prospects', ['owner_id', 'segment_id'])


def downgrade():
    """Drop segmentation tables."""
    op.drop_index('ix_prospects_owner_segment', table_name='prospects')
    op.drop_index('ix_prospects_org_segment', table_name='prospects')
    op.drop_table('prospects')
    op.drop_table('icp_segments')
    op.drop_table('offer_templates')
    op.drop_table('organization_invites')
    op.drop_table('api_users')
    op.drop_table('organizations')
