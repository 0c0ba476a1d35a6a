"""Central registry for Redis Lua scripts used by the wallet ledger.

The scripts are registered at application startup (SCRIPT LOAD) and invoked
with EVALSHA. Every script returns an array whose first element is a numeric
status code:

    - 0: No update - the row was already in the requested state (e.g. the
         transaction is already completed, or the payload is already
         attached). The remaining elements describe the current state.

    - 1: Success saved - the operation changed the stored state. The
         remaining elements describe the new state.

    - 2: Not found - the transaction key does not exist, or it does not
         belong to the user/currency the caller named. The remaining
         elements are empty strings.

    - 3: Invalid state - the transaction is in a terminal status that does
         not allow the operation (e.g. crediting an expired row). The
         remaining elements contain the current state for reference.

"credit_transaction" returns {code, transaction_json, balance_minor_units};
the other scripts return {code, transaction_json}.
"""

WALLET_SCRIPTS = {
    "create_transaction": """
        local tx_key = KEYS[1]
        local user_index_key = KEYS[2]
        local pending_index_key = KEYS[3]
        local tx_json = ARGV[1]
        local tx_id = ARGV[2]
        local created_score = tonumber(ARGV[3])
        local expires_score = tonumber(ARGV[4])

        local current_raw = redis.call('GET', tx_key)
        if current_raw then
            return {0, current_raw}
        end

        redis.call('SET', tx_key, tx_json)
        redis.call('ZADD', user_index_key, created_score, tx_id)
        redis.call('ZADD', pending_index_key, expires_score, tx_id)
        return {1, tx_json}
    """,
    "attach_payload": """
        local tx_key = KEYS[1]
        local hash_index_key = KEYS[2]
        local qr_code_data = ARGV[1]
        local correlation_hash = ARGV[2]
        local updated_at = ARGV[3]

        local current_raw = redis.call('GET', tx_key)
        if not current_raw then
            return {2, ''}
        end

        local tx = cjson.decode(current_raw)
        if tx.correlation_hash ~= cjson.null and tx.correlation_hash ~= nil then
            -- Payload and hash are write-once
            return {0, current_raw}
        end
        if tx.status ~= 'pending' then
            return {3, current_raw}
        end

        tx.qr_code_data = qr_code_data
        tx.correlation_hash = correlation_hash
        tx.updated_at = updated_at
        local new_val = cjson.encode(tx)
        redis.call('SET', tx_key, new_val)
        redis.call('SET', hash_index_key, tx.id)
        return {1, new_val}
    """,
    "transition_status": """
        local tx_key = KEYS[1]
        local pending_index_key = KEYS[2]
        local target = ARGV[1]
        local updated_at = ARGV[2]

        local current_raw = redis.call('GET', tx_key)
        if not current_raw then
            return {2, ''}
        end

        local tx = cjson.decode(current_raw)
        if tx.status ~= 'pending' then
            -- Terminal rows never move again
            return {0, current_raw}
        end

        tx.status = target
        tx.updated_at = updated_at
        local new_val = cjson.encode(tx)
        redis.call('SET', tx_key, new_val)
        redis.call('ZREM', pending_index_key, tx.id)
        return {1, new_val}
    """,
    "credit_transaction": """
        local tx_key = KEYS[1]
        local balance_key = KEYS[2]
        local history_key = KEYS[3]
        local pending_index_key = KEYS[4]
        local user_id = ARGV[1]
        local currency = ARGV[2]
        local settled_at = ARGV[3]
        local external_id = ARGV[4]
        local history_json = ARGV[5]
        local history_score = tonumber(ARGV[6])

        local current_raw = redis.call('GET', tx_key)
        if not current_raw then
            return {2, '', ''}
        end

        local tx = cjson.decode(current_raw)
        if tx.user_id ~= user_id or tx.currency ~= currency then
            return {2, '', ''}
        end

        local current_balance = tonumber(redis.call('GET', balance_key) or '0')
        if tx.status == 'completed' then
            return {0, current_raw, current_balance}
        end
        if tx.status ~= 'pending' then
            return {3, current_raw, current_balance}
        end

        tx.status = 'completed'
        tx.settled_at = settled_at
        tx.updated_at = settled_at
        if external_id ~= '' then
            tx.external_transaction_id = external_id
        end
        local new_val = cjson.encode(tx)
        local minor_units = math.floor(tonumber(tx.amount) * 100 + 0.5)

        redis.call('SET', tx_key, new_val)
        local new_balance = redis.call('INCRBY', balance_key, minor_units)
        redis.call('ZADD', history_key, history_score, history_json)
        redis.call('ZREM', pending_index_key, tx.id)
        return {1, new_val, new_balance}
    """,
}
