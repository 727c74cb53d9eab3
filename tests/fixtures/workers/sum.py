import json


def sum(payload, context):
    total = 0
    for number in json.loads(payload):
        total += number
    context.log("Answer: %s" % total)
    return total
