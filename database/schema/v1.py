"""Schema v1 - Users, items, download tokens and pending transfers."""

schema = {
    'version': 1,
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
                {'name': 'expires_at', 'type': 'TIMESTAMPTZ', 'nullable': False},
                {'name': 'used_once', 'type': 'BOOLEAN', 'default': 'false'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'default': 'now()'}
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
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['seller_id'], 'references': 'users(id)'},
                {'columns': ['item_id'], 'references': 'items(id)'}
            ],
            'indexes': [
                {'name': 'pending_transfers_seller_id_idx', 'columns': ['seller_id']}
            ]
        }
    ]
}
