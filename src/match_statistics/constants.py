# feed constants
INSERT_EVENT_NAME = 'INSERT'
GOAL_EVENT_TYPE = 'goal'

# aggregate document attribute names (as stored / returned to readers)
MATCH_ID_ATTR = 'matchId'
TEAM_ATTR = 'team'
OPPONENT_ATTR = 'opponent'
TOTAL_GOALS_ATTR = 'totalGoals'
APPLIED_IDS_ATTR = 'appliedIds'

# DynamoDB error codes, grouped by how the merge step treats them
CONDITIONAL_CHECK_FAILED = 'ConditionalCheckFailedException'
TRANSIENT_DYNAMO_ERRORS = frozenset({
    'ProvisionedThroughputExceededException',
    'ThrottlingException',
    'RequestLimitExceeded',
    'InternalServerError',
    'ServiceUnavailable',
    'TransactionConflictException',
})

# SQS constants
HTTP_200_STATUS = 200
DEFAULT_MAX_MESSAGES = 10
DEFAULT_WAIT_TIME = 20
DEFAULT_VISIBILITY_TIMEOUT = 60
SQS_RECEIVED_KEYWORD = 'RECEIVED'
SQS_PROCESSED_AND_DELETED_KEYWORD = "PROCESSED -> DELETED"
