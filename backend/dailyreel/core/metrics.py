"""Prometheus metrics for the application"""
from prometheus_client import Counter, Histogram, REGISTRY

# Upload metrics
try:
    successful_uploads_counter = Counter(
        'dailyreel_successful_uploads_total',
        'Total number of videos uploaded to Drive and tracked locally'
    )
except ValueError:
    successful_uploads_counter = REGISTRY._names_to_collectors.get('dailyreel_successful_uploads_total')

try:
    failed_uploads_counter = Counter(
        'dailyreel_failed_uploads_total',
        'Total number of failed pipeline runs',
        ['error_kind']
    )
except ValueError:
    failed_uploads_counter = REGISTRY._names_to_collectors.get('dailyreel_failed_uploads_total')

try:
    upload_attempts_counter = Counter(
        'dailyreel_upload_attempts_total',
        'Total number of multipart upload requests sent to Drive',
        ['outcome']
    )
except ValueError:
    upload_attempts_counter = REGISTRY._names_to_collectors.get('dailyreel_upload_attempts_total')

try:
    split_brain_counter = Counter(
        'dailyreel_split_brain_total',
        'Remote resources created without a matching local row',
        ['resource']
    )
except ValueError:
    split_brain_counter = REGISTRY._names_to_collectors.get('dailyreel_split_brain_total')

# Compression metrics
try:
    compression_duration_histogram = Histogram(
        'dailyreel_compression_seconds',
        'Time spent transcoding a video',
        ['preset'],
        buckets=(1, 2, 5, 10, 20, 30, 60, 120, 300)
    )
except ValueError:
    compression_duration_histogram = REGISTRY._names_to_collectors.get('dailyreel_compression_seconds')

# Reconciliation metrics
try:
    sync_adopted_counter = Counter(
        'dailyreel_sync_adopted_total',
        'Remote objects adopted into the local database by sync',
        ['resource']
    )
except ValueError:
    sync_adopted_counter = REGISTRY._names_to_collectors.get('dailyreel_sync_adopted_total')
