"""Schema v2 - Pending transfer lifecycle, explicit token state, processed webhook events."""

schema = {
    'version': 2,
    'tables': [
        {
            'name': 'users',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'oauth_provider', 'type': 'TEXT', 'nullable': False},
                {'name': 'oauth_subject', 'type': 'TEXT', 'nullable': False},
                {'name': 'email', 'type': 'TEXT', 'nullable': True},
                {'name': 'name', 'type': 'TEXT', 'default': "''"},
                {'name': 'avatar', 'type': 'TEXT', 'default': "''"},
                {'name': 'payout_account_id', 'type': 'TEXT', 'nullable': True},
                {'name': 'payouts_enabled', 'type': 'BOOLEAN', 'default': 'false'},
                {'name': 'legal', 'type': 'JSONB', 'nullable': True},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'default': 'now()'}
            ],
            'indexes': [
                {'name': 'users_oauth_identity_idx', 'columns': ['oauth_provider', 'oauth_subject'], 'unique': True},
                {'name': 'users_email_idx', 'columns': ['email']}
            ]
        },
        {
            'name': 'items',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'slug', 'type': 'TEXT', 'unique': True, 'nullable': False},
                {'name': 'title', 'type': 'TEXT', 'nullable': False},
                {'name': 'price', 'type': 'INT8', 'nullable': False},
                {'name': 'currency', 'type': 'TEXT', 'nullable': False},
                {'name': 'file_path', 'type': 'TEXT', 'nullable': True},
                {'name': 's3_key', 'type': 'TEXT', 'nullable': True},
                {'name': 'preview_path', 'type': 'TEXT', 'nullable': False},
                {'name': 'checkout_preview_path', 'type': 'TEXT', 'nullable': True},
                {'name': 'mime_type', 'type': 'TEXT', 'nullable': False},
                {'name': 'creator_name', 'type': 'TEXT', 'default': "''"},
                {'name': 'owner_user_id', 'type': 'UUID', 'nullable': True},
                {'name': 'license_preset', 'type': 'TEXT', 'default': "'standard'"},
                {'name': 'license_notes', 'type': 'TEXT', 'default': "''"},
                {'name': 'ai_generated', 'type': 'BOOLEAN', 'default': 'false'},
                {'name': 'ai_model_name', 'type': 'TEXT', 'default': "''"},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'default': 'now()'}
            ],
            'checks': [
                {'name': 'items_price_positive', 'expression': 'price >= 1'},
                {'name': 'items_single_locator', 'expression': '(file_path IS NULL) <> (s3_key IS NULL)'}
            ],
            'foreign_keys': [
                {'columns': ['owner_user_id'], 'references': 'users(id)', 'on_delete': 'SET NULL'}
            ],
            'indexes': [
                {'name': 'items_owner_user_id_idx', 'columns': ['owner_user_id']}
            ]
        },
        {
            'name': 'download_tokens',
            'columns': [
                {'name': 'token', 'type': 'TEXT', 'primary_key': True},
                {'name': 'item_id', 'type': 'UUID', 'nullable': False},
                {'name': 'session_id', 'type': 'TEXT', 'unique': True, 'nullable': True},
                {'name': 'state', 'type': 'TEXT', 'default': "'unused'", 'nullable': False},
                {'name': 'expires_at', 'type': 'TIMESTAMPTZ', 'nullable': False},
                {'name': 'used_at', 'type': 'TIMESTAMPTZ', 'nullable': True},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'default': 'now()'}
            ],
            'checks': [
                {'name': 'download_tokens_state', 'expression': "state IN ('unused', 'used')"}
            ],
            'foreign_keys': [
                {'columns': ['item_id'], 'references': 'items(id)', 'on_delete': 'CASCADE'}
            ],
            'indexes': [
                {'name': 'download_tokens_expires_at_idx', 'columns': ['expires_at']}
            ]
        },
        {
            'name': 'pending_transfers',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'seller_id', 'type': 'UUID', 'nullable': False},
                {'name': 'item_id', 'type': 'UUID', 'nullable': False},
                {'name': 'amount', 'type': 'INT8', 'nullable': False},
                {'name': 'currency', 'type': 'TEXT', 'nullable': False},
                {'name': 'payment_intent_id', 'type': 'TEXT', 'unique': True, 'nullable': False},
                {'name': 'transfer_group', 'type': 'TEXT', 'default': "''"},
                {'name': 'reason', 'type': 'TEXT', 'default': "''"},
                {'name': 'status', 'type': 'TEXT', 'default': "'queued'", 'nullable': False},
                {'name': 'attempts', 'type': 'INT8', 'default': '0'},
                {'name': 'last_error', 'type': 'TEXT', 'nullable': True},
                {'name': 'expires_at', 'type': 'TIMESTAMPTZ', 'nullable': False},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'default': 'now()'}
            ],
            'checks': [
                {'name': 'pending_transfers_status', 'expression': "status IN ('queued', 'transferred', 'expired')"}
            ],
            'foreign_keys': [
                {'columns': ['seller_id'], 'references': 'users(id)'},
                {'columns': ['item_id'], 'references': 'items(id)'}
            ],
            'indexes': [
                {'name': 'pending_transfers_seller_id_idx', 'columns': ['seller_id']},
                {'name': 'pending_transfers_status_idx', 'columns': ['status']},
                {'name': 'pending_transfers_expires_at_idx', 'columns': ['expires_at'], 'where': "status = 'queued'"}
            ]
        },
        {
            'name': 'processed_events',
            'columns': [
                {'name': 'event_id', 'type': 'TEXT', 'primary_key': True},
                {'name': 'event_type', 'type': 'TEXT', 'nullable': False},
                {'name': 'received_at', 'type': 'TIMESTAMPTZ', 'default': 'now()'},
                {'name': 'expires_at', 'type': 'TIMESTAMPTZ', 'nullable': False}
            ],
            'indexes': [
                {'name': 'processed_events_expires_at_idx', 'columns': ['expires_at']}
            ]
        }
    ],
    'migrations': [
        '''
        -- Pending transfers get a lifecycle and an expiry horizon (180 days from creation)
        ALTER TABLE pending_transfers ADD COLUMN IF NOT EXISTS status TEXT NOT NULL DEFAULT 'queued';
        ALTER TABLE pending_transfers ADD COLUMN IF NOT EXISTS attempts INT8 DEFAULT 0;
        ALTER TABLE pending_transfers ADD COLUMN IF NOT EXISTS last_error TEXT;
        ALTER TABLE pending_transfers ADD COLUMN IF NOT EXISTS updated_at TIMESTAMPTZ DEFAULT now();
        ALTER TABLE pending_transfers ADD COLUMN IF NOT EXISTS expires_at TIMESTAMPTZ;
        UPDATE pending_transfers SET expires_at = created_at + interval '180 days' WHERE expires_at IS NULL;
        ALTER TABLE pending_transfers ALTER COLUMN expires_at SET NOT NULL;
        ALTER TABLE pending_transfers ADD CONSTRAINT pending_transfers_status
            CHECK (status IN ('queued', 'transferred', 'expired'));
        CREATE INDEX IF NOT EXISTS pending_transfers_status_idx ON pending_transfers(status);
        CREATE INDEX IF NOT EXISTS pending_transfers_expires_at_idx
            ON pending_transfers(expires_at) WHERE status = 'queued';
        ''',
        '''
        -- Download tokens move from a used_once flag to an explicit state
        ALTER TABLE download_tokens ADD COLUMN IF NOT EXISTS state TEXT NOT NULL DEFAULT 'unused';
        ALTER TABLE download_tokens ADD COLUMN IF NOT EXISTS used_at TIMESTAMPTZ;
        UPDATE download_tokens SET state = 'used', used_at = now() WHERE used_once;
        ALTER TABLE download_tokens DROP COLUMN IF EXISTS used_once;
        ALTER TABLE download_tokens ADD CONSTRAINT download_tokens_state
            CHECK (state IN ('unused', 'used'));
        ''',
        '''
        CREATE TABLE IF NOT EXISTS processed_events (
            event_id TEXT PRIMARY KEY,
            event_type TEXT NOT NULL,
            received_at TIMESTAMPTZ DEFAULT now(),
            expires_at TIMESTAMPTZ NOT NULL
        );
        CREATE INDEX IF NOT EXISTS processed_events_expires_at_idx ON processed_events(expires_at);
        '''
    ]
}
