from __future__ import annotations

# One row per served map request. Cluster counters are real columns so summaries do
# not have to parse JSON; anything else the endpoint reports lives in `stats_json`.
CREATE_EVENTS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS events (
  ts_ms BIGINT,
  endpoint TEXT,
  engine TEXT,
  zoom INTEGER,
  bbox_west DOUBLE,
  bbox_south DOUBLE,
  bbox_east DOUBLE,
  bbox_north DOUBLE,
  total_ms DOUBLE,
  feature_count INTEGER,
  cluster_count INTEGER,
  index_cache_hit BOOLEAN,
  stats_json TEXT
);
"""

INSERT_EVENT_SQL = """
INSERT INTO events (
  ts_ms, endpoint, engine, zoom,
  bbox_west, bbox_south, bbox_east, bbox_north,
  total_ms, feature_count, cluster_count, index_cache_hit, stats_json
)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

SUMMARY_SQL_TEMPLATE = """
SELECT
  engine,
  endpoint,
  COUNT(*) AS n,
  AVG(total_ms) AS avg_total_ms,
  quantile_cont(total_ms, 0.50) AS p50_total_ms,
  quantile_cont(total_ms, 0.95) AS p95_total_ms,
  AVG(feature_count) AS avg_features,
  AVG(cluster_count) AS avg_clusters,
  AVG(CASE WHEN index_cache_hit THEN 1 ELSE 0 END) AS cache_hit_rate
FROM events
{where_sql}
GROUP BY engine, endpoint
ORDER BY engine, endpoint
"""

SLOWEST_SQL_TEMPLATE = """
SELECT
  ts_ms, engine, endpoint, zoom, total_ms, feature_count, cluster_count, index_cache_hit,
  bbox_west, bbox_south, bbox_east, bbox_north
FROM events
WHERE total_ms IS NOT NULL {and_sql}
ORDER BY total_ms DESC
LIMIT ?
"""
