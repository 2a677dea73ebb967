# Next page of decoded logs after the (block_number, log_index) cursor
fetch_decoded_logs_after_cursor = """
SELECT
    chain_id,
    address,
    event_name,
    args,
    transaction_hash,
    log_index,
    block_number,
    block_hash,
    block_timestamp
FROM decoded_log_events
WHERE chain_id = :chain_id
  AND (
        block_number > :last_block
        OR (block_number = :last_block AND log_index > :last_log_index)
  )
ORDER BY block_number ASC, log_index ASC
LIMIT :limit
"""

# Row counts per indexed table for the run summary
index_table_counts = """
SELECT 'smart_account' AS table_name, COUNT(*) AS row_count FROM smart_account
UNION ALL
SELECT 'user_operation', COUNT(*) FROM user_operation
UNION ALL
SELECT 'account_deployed', COUNT(*) FROM account_deployed
UNION ALL
SELECT 'account_activity', COUNT(*) FROM account_activity
"""
