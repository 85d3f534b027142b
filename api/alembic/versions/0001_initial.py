"""initial schema"""

from alembic import op
import sqlalchemy as sa
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS vector;')

    op.create_table('chat_sessions',
        sa.Column('session_id', sa.String(64), primary_key=True),
        sa.Column('status', postgresql.ENUM('active', 'inactive', 'banned', name='session_status'), nullable=False),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('user_agent', sa.String(512), nullable=True),
        sa.Column('total_messages', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('total_escalations', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('last_active_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_chat_sessions_last_active_at', 'chat_sessions', ['last_active_at'])

    op.create_table('messages',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('session_id', sa.String(64), nullable=False),
        sa.Column('role', postgresql.ENUM('user', 'bot', 'human', name='message_role'), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('metadata_json', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_messages_session_id', 'messages', ['session_id'])
    op.create_index('ix_messages_created_at', 'messages', ['created_at'])

    op.create_table('escalations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('thread_ts', sa.String(64), nullable=False, unique=True),
        sa.Column('session_id', sa.String(64), nullable=False),
        sa.Column('question', sa.Text(), nullable=True),
        sa.Column('reason', sa.String(32), nullable=False),
        sa.Column('priority', sa.String(16), nullable=False),
        sa.Column('status', postgresql.ENUM('pending', 'answered', name='escalation_status'), nullable=False),
        sa.Column('user_context', sa.JSON(), nullable=False),
        sa.Column('answer', sa.Text(), nullable=True),
        sa.Column('answered_by', sa.String(64), nullable=True),
        sa.Column('answered_at', sa.DateTime(), nullable=True),
        sa.Column('resolution_seconds', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_escalations_session_id', 'escalations', ['session_id'])
    op.create_index('ix_escalations_created_at', 'escalations', ['created_at'])

    op.create_table('learned_answers',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('question', sa.Text(), nullable=False, unique=True),
        sa.Column('answer', sa.Text(), nullable=False),
        sa.Column('embedding', Vector(256), nullable=True),
        sa.Column('confidence', sa.Float(), nullable=False, server_default=sa.text('1.0')),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('answered_by', sa.String(64), nullable=True),
        sa.Column('thread_ts', sa.String(64), nullable=True),
        sa.Column('last_used_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.execute(
        'CREATE INDEX ix_learned_answers_embedding_hnsw ON learned_answers '
        'USING hnsw (embedding vector_cosine_ops) WITH (m = 16, ef_construction = 64);'
    )

    op.create_table('knowledge_cache',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('cache_key', sa.String(128), nullable=False, unique=True),
        sa.Column('question', sa.Text(), nullable=False),
        sa.Column('answer', sa.Text(), nullable=False),
        sa.Column('sources_json', sa.JSON(), nullable=False),
        sa.Column('confidence', sa.Float(), nullable=False),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('last_used_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_knowledge_cache_expires_at', 'knowledge_cache', ['expires_at'])
    op.execute(
        "CREATE INDEX ix_knowledge_cache_question_fts ON knowledge_cache "
        "USING gin (to_tsvector('english', question));"
    )

    op.create_table('documents',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('title', sa.String(1024), nullable=False),
        sa.Column('source', sa.String(1024), nullable=False),
        sa.Column('source_type', sa.String(32), nullable=False),
        sa.Column('content_hash', sa.String(128), nullable=False, unique=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_documents_source_type', 'documents', ['source_type'])
    op.create_table('chunks',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('document_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('documents.id', ondelete='CASCADE'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('heading_path', sa.String(1024), nullable=True),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('document_id', 'position', name='uq_chunk_doc_position'),
    )
    op.create_index('ix_chunks_document_id', 'chunks', ['document_id'])
    op.create_table('embeddings',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('chunk_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('chunks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('model', sa.String(128), nullable=False),
        sa.Column('vector', Vector(256), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_embeddings_chunk_id', 'embeddings', ['chunk_id'])
    op.execute(
        'CREATE INDEX ix_embeddings_vector_hnsw ON embeddings '
        'USING hnsw (vector vector_cosine_ops) WITH (m = 16, ef_construction = 64);'
    )


def downgrade() -> None:
    for table in [
        'embeddings', 'chunks', 'documents', 'knowledge_cache', 'learned_answers',
        'escalations', 'messages', 'chat_sessions',
    ]:
        op.drop_table(table)
    op.execute('DROP TYPE IF EXISTS escalation_status')
    op.execute('DROP TYPE IF EXISTS message_role')
    op.execute('DROP TYPE IF EXISTS session_status')
