class Shout(object):

    def run(self, payload, context):
        return payload.upper()
